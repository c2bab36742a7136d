"""Re-lint capability backed by an external linter process.

The batch processor accepts any async ``(code, file_name) -> diagnostics``
callable. SubprocessRelinter is the one the CLI uses: it runs a linter
command such as ``npx eslint --format json --stdin --stdin-filename {file}``
with the code on stdin and parses ESLint's JSON report from stdout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from typing import Any

from jsmend.errors import DiagnosticsFormatError, RelintError
from jsmend.models import Diagnostic

logger = logging.getLogger(__name__)

FILE_PLACEHOLDER = "{file}"


def diagnostics_from_data(data: Any) -> list[Diagnostic]:
    """Extract diagnostics from decoded linter JSON.

    Accepts ESLint's report format (a list of per-file results, each with a
    ``messages`` list), a single result object, or a bare list of messages.

    Args:
        data: Decoded JSON.

    Returns:
        Diagnostics of every message found, in input order.

    Raises:
        DiagnosticsFormatError: If data matches none of the accepted shapes.
    """
    if isinstance(data, dict):
        if "messages" not in data:
            raise DiagnosticsFormatError("Result object has no 'messages' list")
        data = [data]
    if not isinstance(data, list):
        raise DiagnosticsFormatError(
            f"Expected a list of results or messages, got {type(data).__name__}"
        )

    diagnostics: list[Diagnostic] = []
    for entry in data:
        if isinstance(entry, dict) and "messages" in entry:
            messages = entry["messages"]
            if not isinstance(messages, list):
                raise DiagnosticsFormatError("'messages' must be a list")
            diagnostics.extend(Diagnostic.from_dict(message) for message in messages)
        else:
            diagnostics.append(Diagnostic.from_dict(entry))
    return diagnostics


def parse_eslint_output(text: str) -> list[Diagnostic]:
    """Parse ESLint JSON output into diagnostics.

    Raises:
        DiagnosticsFormatError: If text is not JSON of an accepted shape.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DiagnosticsFormatError(f"Linter output is not valid JSON: {e}") from e
    return diagnostics_from_data(data)


class SubprocessRelinter:
    """Runs a linter command on code passed through stdin.

    Attributes:
        command: Command line, with ``{file}`` replaced by the file name hint.
        default_file_name: File name used when the caller passes none.
    """

    def __init__(self, command: str, default_file_name: str = "temp.js") -> None:
        """Initialize relinter.

        Args:
            command: Linter command line.
            default_file_name: File name hint used when none is given.

        Raises:
            ValueError: If command is empty.
        """
        if not command.strip():
            raise ValueError("Re-lint command must not be empty")
        self.command = command
        self.default_file_name = default_file_name

    def build_args(self, file_name: str | None = None) -> list[str]:
        """Split the command and substitute the file name placeholder."""
        name = file_name or self.default_file_name
        return [arg.replace(FILE_PLACEHOLDER, name) for arg in shlex.split(self.command)]

    async def __call__(self, code: str, file_name: str | None = None) -> list[Diagnostic]:
        """Lint code and return the diagnostics reported for it.

        Raises:
            RelintError: If the process cannot run, fails fatally, or prints
                output that is not an ESLint JSON report.
        """
        args = self.build_args(file_name)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RelintError(f"Cannot run re-lint command '{args[0]}': {e}") from e

        try:
            stdout, stderr = await process.communicate(code.encode("utf-8"))
        except asyncio.CancelledError:
            # A timed out re-lint must not leave the linter running
            process.kill()
            await process.wait()
            raise

        output = stdout.decode("utf-8", errors="replace").strip()
        # ESLint exits with 1 when it reports problems, 2 on fatal errors
        if process.returncode not in (0, 1) and not output:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise RelintError(f"Re-lint command failed with exit code {process.returncode}: {message}")

        try:
            diagnostics = parse_eslint_output(output or "[]")
        except DiagnosticsFormatError as e:
            raise RelintError(str(e)) from e
        logger.debug("Re-lint reported %d diagnostics", len(diagnostics))
        return diagnostics
