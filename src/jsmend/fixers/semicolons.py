"""Fixers for statement terminators: ``semi`` and ``no-extra-semi``."""

from __future__ import annotations

import re

from jsmend.context import mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import (
    find_matching_backward,
    get_line,
    line_start_offset,
    masked_line,
    replace_line,
)
from jsmend.models import Diagnostic

MISSING_MESSAGES = ("Missing semicolon", 'Expected ";"', "semicolon is required")
EXTRA_MESSAGES = ("Extra semicolon", "Unnecessary semicolon", 'Unexpected token ";"')

SEARCH_RADIUS = 5

# Lines ending like this continue on the next line; a ';' would break them
_CONTINUES = tuple("{,;([=+-*/%&|^!?:<>.")
_EMPTY_CONTROL_BODY = re.compile(r"\b(if|while|for)\s*\(.*\)\s*;\s*$")
_EXPRESSION_CONTEXT = re.compile(r"(^|[^=!<>])=(?![=>])|^return\b|^export\s+default\b|^\(")
_BLOCK_KEYWORD_END = re.compile(r"(?<![\w$])(else|try|finally|do)$")
_DECLARATION_START = re.compile(r"(async\s+)?(function|class)\b")


def is_missing_semicolon(message: str) -> bool:
    return any(text in message for text in MISSING_MESSAGES)


def is_extra_semicolon(message: str) -> bool:
    return any(text in message for text in EXTRA_MESSAGES)


def _code_end(masked: str) -> int:
    """Index just past the last code character of a masked line (before any comment)."""
    return len(masked.rstrip())


def _inside_parens(masked: str, index: int) -> bool:
    """True if index lies inside an unclosed ``(`` on the masked line."""
    depth = 0
    for i in range(index - 1, -1, -1):
        if masked[i] == ")":
            depth += 1
        elif masked[i] == "(":
            if depth == 0:
                return True
            depth -= 1
    return False


class SemiFixer(BaseFixer):
    """Inserts missing semicolons and removes superfluous ones."""

    rule_id = "semi"
    complexity = "simple"
    description = "Insert or remove statement-terminating semicolons"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        if is_missing_semicolon(diagnostic.message):
            return self._insert_position(code, diagnostic) != -1
        if is_extra_semicolon(diagnostic.message):
            return self._semicolon_position(code, diagnostic) != -1
        return False

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        line = get_line(code, diagnostic.line)
        if is_missing_semicolon(diagnostic.message):
            position = self._insert_position(code, diagnostic)
            if position == -1:
                raise self.refuse("no insertion point for a semicolon")
            new_line = line[:position] + ";" + line[position:]
            if _EMPTY_CONTROL_BODY.search(new_line[: position + 1]):
                raise self.refuse("semicolon would create an empty control statement body")
            return replace_line(code, diagnostic.line, new_line)

        position = self._semicolon_position(code, diagnostic)
        if position == -1:
            raise self.refuse("no semicolon near the reported position")
        return replace_line(code, diagnostic.line, line[:position] + line[position + 1 :])

    def _insert_position(self, code: str, diagnostic: Diagnostic) -> int:
        masked = masked_line(code, diagnostic.line)
        end = _code_end(masked)
        if end == 0 or (masked[end - 1] in _CONTINUES and not masked[:end].endswith(("++", "--"))):
            return -1

        column = diagnostic.column - 1
        if 0 < column < end and masked[column - 1].strip() and masked[column] != ";":
            # Statement ends mid-line: insert right after its last token
            if masked[column:].lstrip().startswith(";"):
                return -1
            return column
        return end

    def _semicolon_position(self, code: str, diagnostic: Diagnostic) -> int:
        masked = masked_line(code, diagnostic.line)
        column = diagnostic.column - 1
        if 0 <= column < len(masked) and masked[column] == ";":
            return column
        low = max(0, column - SEARCH_RADIUS)
        high = min(len(masked) - 1, column + SEARCH_RADIUS)
        for i in range(low, high + 1):
            if masked[i] == ";":
                return i
        return -1

    def _check_invariant(self, before: str, after: str) -> bool:
        return abs(mask_literals(after).count(";") - mask_literals(before).count(";")) == 1


class NoExtraSemiFixer(BaseFixer):
    """Removes semicolons that form empty statements (``;;`` or ``};``)."""

    rule_id = "no-extra-semi"
    complexity = "simple"
    description = "Remove unnecessary semicolons"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._extra_position(code, diagnostic) != -1

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        position = self._extra_position(code, diagnostic)
        if position == -1:
            raise self.refuse("no unnecessary semicolon near the reported position")
        line = get_line(code, diagnostic.line)
        return replace_line(code, diagnostic.line, line[:position] + line[position + 1 :])

    def _extra_position(self, code: str, diagnostic: Diagnostic) -> int:
        masked = masked_line(code, diagnostic.line)
        column = diagnostic.column - 1
        candidates = [column] + [
            i
            for offset in range(1, SEARCH_RADIUS + 1)
            for i in (column + offset, column - offset)
        ]
        for i in candidates:
            if not 0 <= i < len(masked) or masked[i] != ";":
                continue
            if self._is_empty_statement(code, diagnostic.line, masked, i):
                return i
        return -1

    def _is_empty_statement(self, code: str, line: int, masked: str, index: int) -> bool:
        if _inside_parens(masked, index):
            return False
        prev = masked[:index].rstrip()
        if prev.endswith(";"):
            return True
        full = mask_literals(code)
        line_offset = line_start_offset(code, line)
        if prev.endswith("}"):
            return _closes_statement_block(full, line_offset + len(prev) - 1)
        if not prev:
            # Alone at line start: empty unless it terminates the previous line
            before = full[:line_offset].rstrip()
            return not before or before.endswith((";", "{", "}"))
        return False

    def _check_invariant(self, before: str, after: str) -> bool:
        return mask_literals(before).count(";") - mask_literals(after).count(";") == 1


def _closes_statement_block(full: str, offset: int) -> bool:
    """True if the ``}`` at offset closes a statement block rather than an expression."""
    opener = find_matching_backward(full, offset)
    if opener == -1:
        return False
    head = full[:opener].rstrip()
    statement = head[max(head.rfind(";"), head.rfind("{"), head.rfind("}")) + 1 :].strip()
    if not statement:
        return True
    if _EXPRESSION_CONTEXT.search(statement):
        return False
    if statement.endswith(")") or _BLOCK_KEYWORD_END.search(statement):
        return True
    return bool(_DECLARATION_START.match(statement))
