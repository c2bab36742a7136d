"""Fixer for the ``comma-dangle`` rule."""

from __future__ import annotations

from jsmend.context import absolute_offset, mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import bracket_counts, line_start_offset, masked_line, safe_replace
from jsmend.models import Diagnostic

ADD_MESSAGES = ("Missing trailing comma", "Expected trailing comma")
REMOVE_MESSAGES = ("Unexpected trailing comma", "Trailing comma")
COMMA_SEARCH_RADIUS = 10

_CLOSERS = ")]}"


def wants_comma(message: str) -> bool:
    return any(text in message for text in ADD_MESSAGES)


def forbids_comma(message: str) -> bool:
    return any(text in message for text in REMOVE_MESSAGES)


class CommaDangleFixer(BaseFixer):
    """Adds or removes the trailing comma of a multi-element list."""

    rule_id = "comma-dangle"
    complexity = "simple"
    description = "Add or remove trailing commas"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        if wants_comma(diagnostic.message):
            return self._insert_offset(code, diagnostic) != -1
        if forbids_comma(diagnostic.message):
            return self._dangling_offset(code, diagnostic) != -1
        return False

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        if wants_comma(diagnostic.message):
            offset = self._insert_offset(code, diagnostic)
            if offset == -1:
                raise self.refuse("no list element before a closing bracket")
            return safe_replace(code, offset, offset, ",")
        offset = self._dangling_offset(code, diagnostic)
        if offset == -1:
            raise self.refuse("no trailing comma near the reported position")
        return safe_replace(code, offset, offset + 1, "")

    def _insert_offset(self, code: str, diagnostic: Diagnostic) -> int:
        """Offset just after the last element before the next enclosing closer."""
        masked = mask_literals(code)
        start = absolute_offset(code, diagnostic.line, diagnostic.column)
        depth = 0
        for i in range(start, len(masked)):
            ch = masked[i]
            if ch in "([{":
                depth += 1
            elif ch in _CLOSERS:
                depth -= 1
                if depth < 0:
                    end = len(masked[:i].rstrip())
                    if end == 0 or masked[end - 1] in "([{,":
                        return -1
                    return end
        return -1

    def _dangling_offset(self, code: str, diagnostic: Diagnostic) -> int:
        masked_text = masked_line(code, diagnostic.line)
        masked = mask_literals(code)
        base = line_start_offset(code, diagnostic.line)
        column = diagnostic.column - 1
        order = [column] + [
            i
            for offset in range(1, COMMA_SEARCH_RADIUS + 1)
            for i in (column + offset, column - offset)
        ]
        for i in order:
            if not 0 <= i < len(masked_text) or masked_text[i] != ",":
                continue
            rest = masked[base + i + 1 :].lstrip()
            if rest[:1] and rest[0] in _CLOSERS:
                return base + i
        return -1

    def _check_invariant(self, before: str, after: str) -> bool:
        if bracket_counts(before) != bracket_counts(after):
            return False
        return abs(mask_literals(before).count(",") - mask_literals(after).count(",")) == 1
