"""Whitespace fixers: trailing spaces, final newline, space before blocks, indentation."""

from __future__ import annotations

import re

from jsmend.context import mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import (
    bracket_counts,
    get_line,
    leading_whitespace,
    line_start_offset,
    masked_line,
    replace_line,
)
from jsmend.models import Diagnostic

BRACE_SEARCH_RADIUS = 20
DEFAULT_INDENT_SIZE = 2

_INDENT_MESSAGE = re.compile(r"Expected indentation of (\d+) (space|tab)")
_OPENERS = "([{"
_CLOSERS = ")]}"


class NoTrailingSpacesFixer(BaseFixer):
    """Strips spaces and tabs from the end of a line."""

    rule_id = "no-trailing-spaces"
    complexity = "simple"
    description = "Remove trailing whitespace"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        line = get_line(code, diagnostic.line)
        return line != line.rstrip(" \t")

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        line = get_line(code, diagnostic.line)
        return replace_line(code, diagnostic.line, line.rstrip(" \t"))


class EolLastFixer(BaseFixer):
    """Adds a final newline, or removes trailing newlines when the rule forbids them."""

    rule_id = "eol-last"
    complexity = "simple"
    description = "Ensure the file ends with a single newline"

    def _forbids_newline(self, diagnostic: Diagnostic) -> bool:
        return "not allowed" in diagnostic.message

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        if not code:
            return False
        if self._forbids_newline(diagnostic):
            return code.endswith("\n")
        return not code.endswith("\n")

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        if self._forbids_newline(diagnostic):
            return code.rstrip("\n")
        return code + "\n"


class SpaceBeforeBlocksFixer(BaseFixer):
    """Adds or removes the whitespace in front of a block's opening brace."""

    rule_id = "space-before-blocks"
    complexity = "simple"
    description = "Normalize the space before opening braces"

    def _removes_space(self, diagnostic: Diagnostic) -> bool:
        return "Unexpected space" in diagnostic.message

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._brace_index(code, diagnostic) != -1

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        index = self._brace_index(code, diagnostic)
        if index == -1:
            raise self.refuse("no opening brace near the reported position")
        line = get_line(code, diagnostic.line)
        if self._removes_space(diagnostic):
            prefix = line[:index].rstrip(" \t")
            return replace_line(code, diagnostic.line, prefix + line[index:])
        return replace_line(code, diagnostic.line, line[:index] + " " + line[index:])

    def _brace_index(self, code: str, diagnostic: Diagnostic) -> int:
        masked = masked_line(code, diagnostic.line)
        column = diagnostic.column - 1
        order = [column] + [
            i
            for offset in range(1, BRACE_SEARCH_RADIUS + 1)
            for i in (column + offset, column - offset)
        ]
        removing = self._removes_space(diagnostic)
        for i in order:
            if not 0 < i < len(masked) or masked[i] != "{":
                continue
            prev = masked[i - 1]
            if removing and prev in " \t" and masked[:i].strip():
                return i
            if not removing and (prev == ")" or prev.isalnum() or prev == "_"):
                return i
        return -1

    def _check_invariant(self, before: str, after: str) -> bool:
        return bracket_counts(before) == bracket_counts(after)


def detect_indent_unit(code: str) -> str:
    """Detect the indentation unit used by code: a tab, or 2, 4 or 8 spaces."""
    widths: list[int] = []
    for line in code.split("\n"):
        if not line.strip():
            continue
        indent = leading_whitespace(line)
        if indent.startswith("\t"):
            return "\t"
        if indent:
            widths.append(len(indent))
    if not widths:
        return " " * DEFAULT_INDENT_SIZE
    smallest = min(widths)
    for size in (2, 4, 8):
        if smallest == size:
            return " " * size
    return " " * DEFAULT_INDENT_SIZE


def expected_depth(code: str, line: int) -> int:
    """Bracket depth a line should be indented to.

    The depth is the number of brackets left open by all preceding code,
    one less when the line itself starts with a closing bracket.
    """
    masked = mask_literals(code)
    start = line_start_offset(code, line)
    depth = 0
    for ch in masked[:start]:
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth = max(0, depth - 1)
    first = masked_line(code, line).lstrip()[:1]
    if first and first in _CLOSERS:
        depth = max(0, depth - 1)
    return depth


class IndentFixer(BaseFixer):
    """Re-indents a line to the depth implied by the surrounding brackets.

    The target indentation is taken from the diagnostic message when it
    states one (``Expected indentation of 4 spaces``), otherwise it is
    computed from bracket depth and the file's indentation unit.
    """

    rule_id = "indent"
    complexity = "complex"
    description = "Correct line indentation"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        line = get_line(code, diagnostic.line)
        if not line.strip():
            return False
        return leading_whitespace(line) != self._expected_indent(code, diagnostic)

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        line = get_line(code, diagnostic.line)
        return replace_line(
            code, diagnostic.line, self._expected_indent(code, diagnostic) + line.lstrip(" \t")
        )

    def _expected_indent(self, code: str, diagnostic: Diagnostic) -> str:
        match = _INDENT_MESSAGE.search(diagnostic.message)
        if match is not None:
            count = int(match.group(1))
            return ("\t" if match.group(2) == "tab" else " ") * count
        return detect_indent_unit(code) * expected_depth(code, diagnostic.line)

    def _check_invariant(self, before: str, after: str) -> bool:
        return bracket_counts(before) == bracket_counts(after)
