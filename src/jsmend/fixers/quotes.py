"""Fixer for the ``quotes`` rule."""

from __future__ import annotations

import re

from jsmend.context import KIND_DELIMITER, absolute_offset, scan_kinds
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import safe_replace
from jsmend.models import Diagnostic

QUOTE_NAMES = {
    "singlequote": "'",
    "doublequote": '"',
    "backtick": "`",
}

_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


def target_quote(message: str) -> str | None:
    """Return the quote character a ``quotes`` message asks for, if any."""
    for name, quote in QUOTE_NAMES.items():
        if name in message:
            return quote
    return None


def literal_bounds(code: str, offset: int) -> tuple[int, int] | None:
    """Return (open, close) delimiter offsets of the literal starting at offset."""
    kinds = scan_kinds(code)
    if offset >= len(code) or kinds[offset] != KIND_DELIMITER:
        return None
    quote = code[offset]
    for i in range(offset + 1, len(code)):
        if kinds[i] == KIND_DELIMITER and code[i] == quote:
            return offset, i
        if quote == "`" and kinds[i] == KIND_DELIMITER:
            # A nested template inside an interpolation
            return None
    return None


def delimiter_count(code: str, quote: str) -> int:
    kinds = scan_kinds(code)
    return sum(1 for ch, kind in zip(code, kinds) if kind == KIND_DELIMITER and ch == quote)


class QuotesFixer(BaseFixer):
    """Converts a string literal to the quote style named in the message.

    Escapes of the old quote character are dropped. Literals whose content
    already contains the target quote are refused rather than re-escaped,
    as are template literals with interpolations or line breaks.
    """

    rule_id = "quotes"
    complexity = "simple"
    description = "Convert string literals to the configured quote style"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        target = target_quote(diagnostic.message)
        if target is None:
            return False
        bounds = self._bounds(code, diagnostic)
        return bounds is not None and code[bounds[0]] != target

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        target = target_quote(diagnostic.message)
        bounds = self._bounds(code, diagnostic)
        if target is None or bounds is None:
            raise self.refuse("no string literal at the reported position")
        start, end = bounds
        source_quote = code[start]
        content = code[start + 1 : end]

        if source_quote == "`" and ("${" in content or "\n" in content):
            raise self.refuse("template literal cannot be expressed as a plain string")
        if target == "`" and "${" in content:
            raise self.refuse("content would become a template interpolation")

        content = _ESCAPE.sub(
            lambda m: m.group(1) if m.group(1) == source_quote else m.group(0),
            content,
        )
        if target in content:
            raise self.refuse(f"string content contains {target}")
        return safe_replace(code, start, end + 1, f"{target}{content}{target}")

    def _bounds(self, code: str, diagnostic: Diagnostic) -> tuple[int, int] | None:
        return literal_bounds(code, absolute_offset(code, diagnostic.line, diagnostic.column))

    def _check_invariant(self, before: str, after: str) -> bool:
        return len(before) - len(after) >= 0 and any(
            delimiter_count(after, q) == delimiter_count(before, q) + 2 for q in "'\"`"
        )
