"""Fixer for the ``no-console`` rule."""

from __future__ import annotations

import re
from typing import Literal

from jsmend.context import ContextAnalyzer, mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import find_matching, line_start_offset
from jsmend.models import Diagnostic
from jsmend.validators.code_validator import CodeValidator

ConsoleMode = Literal["comment", "remove"]

CONSOLE_MODES = ("comment", "remove")
CONSOLE_METHODS = ("log", "error", "warn", "info", "debug", "trace", "dir", "time", "timeEnd")

CONSOLE_CALL = re.compile(
    rf"(?<![\w$.])console\s*\.\s*(?:{'|'.join(CONSOLE_METHODS)})\s*\("
)


class NoConsoleFixer(BaseFixer):
    """Comments out or removes a ``console.<method>(...)`` call.

    A call that makes up its whole line(s) is handled as a statement: line
    comments in ``comment`` mode, deleted lines in ``remove`` mode. A call
    sharing its line with other code becomes a ``/* ... */`` block comment
    or is cut out, keeping any semicolon the surrounding code needs.
    """

    rule_id = "no-console"
    complexity = "simple"
    description = "Comment out or remove console calls"

    def __init__(
        self,
        mode: ConsoleMode = "comment",
        analyzer: ContextAnalyzer | None = None,
        validator: CodeValidator | None = None,
    ) -> None:
        if mode not in CONSOLE_MODES:
            raise ValueError(f"no-console mode must be one of {CONSOLE_MODES}, got '{mode}'")
        super().__init__(analyzer=analyzer, validator=validator)
        self.mode = mode

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._find_call(code, diagnostic) is not None

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        call = self._find_call(code, diagnostic)
        if call is None:
            raise self.refuse("no console call at the reported position")
        start, end = call
        masked = mask_literals(code)

        # Swallow the statement's own semicolon
        stop = end
        while stop < len(masked) and masked[stop] in " \t":
            stop += 1
        has_semicolon = stop < len(masked) and masked[stop] == ";"
        statement_end = stop + 1 if has_semicolon else end

        line_start = code.rfind("\n", 0, start) + 1
        line_end = code.find("\n", statement_end)
        line_end = len(code) if line_end == -1 else line_end
        prefix = masked[line_start:start].strip()
        control_body = not prefix and _is_control_body(masked, line_start)
        standalone = not prefix and not masked[statement_end:line_end].strip() and not control_body

        if standalone:
            if self.mode == "remove":
                return self._delete_lines(code, line_start, line_end)
            lines = code[line_start:line_end].split("\n")
            indent = lines[0][: len(lines[0]) - len(lines[0].lstrip())]
            commented = [indent + "// " + lines[0].lstrip()] + ["// " + text for text in lines[1:]]
            return code[:line_start] + "\n".join(commented) + code[line_end:]

        # Inline: keep a semicolon unless the call is preceded by a statement boundary
        at_boundary = prefix.endswith((";", "{", "}")) or not (prefix or control_body)
        cut_end = statement_end if at_boundary else end
        if self.mode == "remove":
            return code[:start] + code[cut_end:]
        text = code[start:cut_end]
        if "*/" in text:
            raise self.refuse("call contains a block comment terminator")
        return code[:start] + f"/* {text} */" + code[cut_end:]

    def _find_call(self, code: str, diagnostic: Diagnostic) -> tuple[int, int] | None:
        """Return (start, end) of the console call nearest to the column."""
        masked = mask_literals(code)
        line_start = line_start_offset(code, diagnostic.line)
        line_end = masked.find("\n", line_start)
        line_end = len(masked) if line_end == -1 else line_end
        target = line_start + diagnostic.column - 1

        matches = list(CONSOLE_CALL.finditer(masked, line_start, line_end))
        if not matches:
            return None
        match = min(matches, key=lambda m: abs(m.start() - target))
        close = find_matching(masked, match.end() - 1)
        if close == -1:
            return None
        return match.start(), close + 1

    def _delete_lines(self, code: str, line_start: int, line_end: int) -> str:
        if line_end < len(code):
            return code[:line_start] + code[line_end + 1 :]
        if line_start > 0:
            return code[: line_start - 1]
        return ""

    def _check_invariant(self, before: str, after: str) -> bool:
        count_before = len(CONSOLE_CALL.findall(mask_literals(before)))
        count_after = len(CONSOLE_CALL.findall(mask_literals(after)))
        return count_before - count_after == 1


def _is_control_body(masked: str, line_start: int) -> bool:
    """True if the line at line_start is the unbraced body of a control statement."""
    before = masked[:line_start].rstrip()
    if re.search(r"(?<![\w$])(else|do)$", before):
        return True
    if not before.endswith(")"):
        return False
    depth = 0
    for i in range(len(before) - 1, -1, -1):
        if before[i] == ")":
            depth += 1
        elif before[i] == "(":
            depth -= 1
            if depth == 0:
                return bool(re.search(r"(?<![\w$])(if|for|while)\s*$", before[:i]))
    return False
