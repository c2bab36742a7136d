"""Tests for diagnostics parsing and the subprocess re-lint capability."""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
from pathlib import Path

import pytest

from jsmend.errors import DiagnosticsFormatError, RelintError
from jsmend.models import Diagnostic
from jsmend.relint import SubprocessRelinter, diagnostics_from_data, parse_eslint_output

MESSAGE = {"ruleId": "semi", "message": "Missing semicolon.", "line": 1, "column": 10, "severity": 2}


class TestDiagnosticFromDict:
    """Tests for Diagnostic.from_dict."""

    def test_eslint_message(self) -> None:
        """Test the camelCase ESLint message shape."""
        diagnostic = Diagnostic.from_dict({**MESSAGE, "endLine": 1, "endColumn": 11})
        assert diagnostic == Diagnostic(
            rule_id="semi",
            message="Missing semicolon.",
            line=1,
            column=10,
            end_line=1,
            end_column=11,
            severity="error",
        )

    def test_snake_case_and_string_severity(self) -> None:
        """Test snake_case keys and textual severities."""
        diagnostic = Diagnostic.from_dict(
            {"rule_id": "quotes", "line": 2, "column": 3, "severity": "warning"}
        )
        assert diagnostic.rule_id == "quotes"
        assert diagnostic.severity == "warning"
        assert diagnostic.message == ""

    def test_numeric_warning_severity(self) -> None:
        """Test ESLint's numeric severity 1."""
        assert Diagnostic.from_dict({**MESSAGE, "severity": 1}).severity == "warning"

    def test_parser_error_has_no_rule(self) -> None:
        """Test that a null ruleId is kept as None."""
        diagnostic = Diagnostic.from_dict({"ruleId": None, "message": "Parsing error", "line": 1, "column": 1})
        assert diagnostic.rule_id is None

    @pytest.mark.parametrize(
        "data",
        [
            {"ruleId": "semi", "line": "1", "column": 1},
            {"ruleId": "semi", "line": 1},
            ["semi", 1, 1],
        ],
    )
    def test_invalid_message(self, data: object) -> None:
        """Test that malformed messages are rejected."""
        with pytest.raises(DiagnosticsFormatError):
            Diagnostic.from_dict(data)  # type: ignore[arg-type]

    def test_to_dict(self) -> None:
        """Test serialization back to the linter shape."""
        diagnostic = Diagnostic.from_dict(MESSAGE)
        assert diagnostic.to_dict() == {
            "ruleId": "semi",
            "message": "Missing semicolon.",
            "line": 1,
            "column": 10,
            "severity": "error",
        }


class TestDiagnosticsFromData:
    """Tests for diagnostics_from_data and parse_eslint_output."""

    def test_eslint_report(self) -> None:
        """Test a list of per-file results."""
        data = [{"filePath": "a.js", "messages": [MESSAGE, {**MESSAGE, "line": 2}]}]
        assert [d.line for d in diagnostics_from_data(data)] == [1, 2]

    def test_single_result(self) -> None:
        """Test one result object."""
        assert len(diagnostics_from_data({"messages": [MESSAGE]})) == 1

    def test_bare_message_list(self) -> None:
        """Test a plain list of messages."""
        assert diagnostics_from_data([MESSAGE])[0].rule_id == "semi"

    def test_result_without_messages(self) -> None:
        """Test an object missing its messages."""
        with pytest.raises(DiagnosticsFormatError, match="no 'messages' list"):
            diagnostics_from_data({"filePath": "a.js"})

    def test_messages_not_a_list(self) -> None:
        """Test a result whose messages field is not a list."""
        with pytest.raises(DiagnosticsFormatError, match="'messages' must be a list"):
            diagnostics_from_data([{"messages": "semi"}])

    def test_unexpected_type(self) -> None:
        """Test a scalar document."""
        with pytest.raises(DiagnosticsFormatError, match="got str"):
            diagnostics_from_data("semi")

    def test_parse_invalid_json(self) -> None:
        """Test linter output that is not JSON."""
        with pytest.raises(DiagnosticsFormatError, match="not valid JSON"):
            parse_eslint_output("Oops! Something went wrong")

    def test_parse_eslint_output(self) -> None:
        """Test parsing a JSON report string."""
        text = json.dumps([{"messages": [MESSAGE]}])
        assert parse_eslint_output(text) == [Diagnostic.from_dict(MESSAGE)]


def _linter_script(tmp_path: Path, body: str) -> str:
    """Write a stand-in linter script and return the command running it."""
    script = tmp_path / "linter.py"
    script.write_text(body)
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))} {{file}}"


class TestSubprocessRelinter:
    """Tests for SubprocessRelinter."""

    def test_empty_command(self) -> None:
        """Test that an empty command is rejected."""
        with pytest.raises(ValueError, match="must not be empty"):
            SubprocessRelinter("   ")

    def test_build_args(self) -> None:
        """Test splitting and file name substitution."""
        relinter = SubprocessRelinter("npx eslint --format json --stdin --stdin-filename {file}")
        assert relinter.build_args("src/app.js") == [
            "npx",
            "eslint",
            "--format",
            "json",
            "--stdin",
            "--stdin-filename",
            "src/app.js",
        ]
        assert relinter.build_args()[-1] == "temp.js"

    def test_build_args_quoting(self) -> None:
        """Test that quoted arguments stay together."""
        relinter = SubprocessRelinter("lint --config 'my config.json' {file}", default_file_name="x.js")
        assert relinter.build_args() == ["lint", "--config", "my config.json", "x.js"]

    def test_runs_linter_on_stdin(self, tmp_path: Path) -> None:
        """Test that code is piped to the linter and its report parsed."""
        command = _linter_script(
            tmp_path,
            "import json, sys\n"
            "code = sys.stdin.read()\n"
            "message = {'ruleId': 'semi', 'message': sys.argv[1], 'line': 1,"
            " 'column': len(code) + 1, 'severity': 2}\n"
            "print(json.dumps([{'messages': [message]}]))\n"
            "sys.exit(1)\n",
        )
        relinter = SubprocessRelinter(command)
        diagnostics = asyncio.run(relinter("let a = 1", "app.js"))
        assert diagnostics == [
            Diagnostic(rule_id="semi", message="app.js", line=1, column=10, severity="error")
        ]

    def test_fatal_exit(self, tmp_path: Path) -> None:
        """Test that a fatal exit without output raises RelintError."""
        command = _linter_script(
            tmp_path, "import sys\nsys.stderr.write('config missing')\nsys.exit(2)\n"
        )
        with pytest.raises(RelintError, match="exit code 2: config missing"):
            asyncio.run(SubprocessRelinter(command)("let a = 1;"))

    def test_invalid_output(self, tmp_path: Path) -> None:
        """Test that a non-JSON report raises RelintError."""
        command = _linter_script(tmp_path, "print('not json')\n")
        with pytest.raises(RelintError, match="not valid JSON"):
            asyncio.run(SubprocessRelinter(command)("let a = 1;"))

    def test_missing_executable(self) -> None:
        """Test that a command that cannot start raises RelintError."""
        relinter = SubprocessRelinter("jsmend-no-such-linter-binary {file}")
        with pytest.raises(RelintError, match="Cannot run re-lint command"):
            asyncio.run(relinter("let a = 1;"))
