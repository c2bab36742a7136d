"""Operator fixers: ``eqeqeq`` and ``no-plusplus``."""

from __future__ import annotations

import re

from jsmend.context import mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import (
    IDENTIFIER,
    find_matching_backward,
    get_line,
    line_start_offset,
    masked_line,
    replace_line,
    safe_replace,
)
from jsmend.models import Diagnostic

LOOSE_EQUALITY = re.compile(r"(?<![=!<>])[=!]=(?!=)")

_TARGET = rf"{IDENTIFIER}(?:\s*\.\s*{IDENTIFIER})*"
_POSTFIX = re.compile(rf"(?<![\w$.])({_TARGET})\s*(\+\+|--)")
_PREFIX = re.compile(rf"(\+\+|--)\s*({_TARGET})(?![\w$])")
_CONTROL_HEADS = frozenset({"if", "else", "for", "while", "do"})


class EqeqeqFixer(BaseFixer):
    """Replaces the first loose equality operator at or after the column."""

    rule_id = "eqeqeq"
    complexity = "simple"
    description = "Use strict equality operators"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._operator_index(code, diagnostic) != -1

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        index = self._operator_index(code, diagnostic)
        if index == -1:
            raise self.refuse("no loose equality operator on the line")
        line = get_line(code, diagnostic.line)
        # '==' -> '===' and '!=' -> '!==' both insert one '=' after the operator
        return replace_line(code, diagnostic.line, safe_replace(line, index + 2, index + 2, "="))

    def _operator_index(self, code: str, diagnostic: Diagnostic) -> int:
        masked = masked_line(code, diagnostic.line)
        match = LOOSE_EQUALITY.search(masked, max(0, diagnostic.column - 1))
        return match.start() if match else -1

    def _check_invariant(self, before: str, after: str) -> bool:
        loose_before = len(LOOSE_EQUALITY.findall(mask_literals(before)))
        loose_after = len(LOOSE_EQUALITY.findall(mask_literals(after)))
        return loose_before - loose_after == 1


class NoPlusplusFixer(BaseFixer):
    """Rewrites ``x++``/``++x`` as ``x += 1`` (and ``--`` as ``-= 1``).

    Only updates whose value is discarded are rewritten: standalone
    statements and the update clause of a ``for`` header. ``a[i++]`` or
    ``y = x++`` would change meaning and are refused.
    """

    rule_id = "no-plusplus"
    complexity = "simple"
    description = "Replace increment and decrement operators with compound assignment"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._find_update(code, diagnostic) is not None

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        found = self._find_update(code, diagnostic)
        if found is None:
            raise self.refuse("no increment or decrement operator at the reported position")
        start, end, target, operator = found
        masked = mask_literals(code)
        if not self._value_discarded(masked, start, end):
            raise self.refuse("the value of the update expression is used")
        compound = "+=" if operator == "++" else "-="
        return safe_replace(code, start, end, f"{target} {compound} 1")

    def _find_update(self, code: str, diagnostic: Diagnostic) -> tuple[int, int, str, str] | None:
        """Locate the update expression nearest to the column.

        Returns:
            (start, end, target, operator) with absolute offsets, or None.
        """
        masked = masked_line(code, diagnostic.line)
        base = line_start_offset(code, diagnostic.line)
        column = diagnostic.column - 1
        candidates: list[tuple[int, int, str, str]] = []
        for match in _POSTFIX.finditer(masked):
            target = re.sub(r"\s+", "", match.group(1))
            candidates.append((match.start(), match.end(), target, match.group(2)))
        for match in _PREFIX.finditer(masked):
            target = re.sub(r"\s+", "", match.group(2))
            candidates.append((match.start(), match.end(), target, match.group(1)))
        if not candidates:
            return None
        start, end, target, operator = min(
            candidates,
            key=lambda c: 0 if c[0] <= column < c[1] else min(abs(c[0] - column), abs(c[1] - column)),
        )
        return base + start, base + end, target, operator

    def _value_discarded(self, masked: str, start: int, end: int) -> bool:
        before = masked[:start].rstrip()
        after = masked[end:].lstrip(" \t")
        if self._in_for_update(masked, start):
            return before.endswith((";", ",")) and after.startswith((")", ","))
        if not after or after.startswith((";", "\n", "}")):
            if not before or before.endswith((";", "{", "}")):
                return True
            if before.endswith(")"):
                opener = find_matching_backward(before, len(before) - 1)
                head = re.search(r"([\w$]+)\s*$", before[:opener]) if opener != -1 else None
                return head is not None and head.group(1) in _CONTROL_HEADS
            return bool(re.search(r"(?<![\w$])(else|do)$", before))
        return False

    def _in_for_update(self, masked: str, offset: int) -> bool:
        depth = 0
        for i in range(offset - 1, -1, -1):
            ch = masked[i]
            if ch in ")]}":
                depth += 1
            elif ch in "([{":
                if depth == 0:
                    if ch != "(" or not re.search(r"(?<![\w$])for\s*$", masked[:i]):
                        return False
                    return masked[i:offset].count(";") == 2
                depth -= 1
        return False

    def _check_invariant(self, before: str, after: str) -> bool:
        masked_before = mask_literals(before)
        masked_after = mask_literals(after)
        count_before = masked_before.count("++") + masked_before.count("--")
        count_after = masked_after.count("++") + masked_after.count("--")
        return count_before - count_after == 1
