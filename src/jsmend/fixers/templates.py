"""Fixer for the ``prefer-template`` rule."""

from __future__ import annotations

import re

from jsmend.context import KIND_COMMENT, KIND_DELIMITER, absolute_offset, mask_literals, scan_kinds
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.quotes import delimiter_count
from jsmend.fixers.utils import split_top_level
from jsmend.models import Diagnostic

# Operators binding looser than '+' (or equally tight, like '-') change how a
# concatenation groups, so an expression containing them is not converted.
_LOOSER_OPERATORS = re.compile(r"[-=?:&|<>,!~]|\+\+|\+=|\b(?:in|instanceof|typeof|void|delete|await|yield|new)\b")
_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


def expression_end(masked: str, start: int) -> int:
    """Return the offset just past the expression that begins at start."""
    depth = 0
    i = start
    while i < len(masked):
        ch = masked[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                break
            depth -= 1
        elif depth == 0 and ch in ";,":
            break
        elif depth == 0 and ch == "\n":
            before = masked[start:i].rstrip()
            after = masked[i + 1 :].lstrip()
            if not before.endswith("+") and not after.startswith("+"):
                break
        i += 1
    return start + len(masked[start:i].rstrip())


def string_literal_content(operand: str) -> str | None:
    """Return the raw content of a single- or double-quoted literal operand."""
    if len(operand) < 2 or operand[0] not in "'\"" or operand[-1] != operand[0]:
        return None
    kinds = scan_kinds(operand)
    if kinds.count(KIND_DELIMITER) != 2:
        return None
    return operand[1:-1]


def template_content(operand: str) -> str | None:
    """Return the raw content of a template literal operand."""
    if len(operand) < 2 or operand[0] != "`" or operand[-1] != "`":
        return None
    kinds = scan_kinds(operand)
    if kinds[-1] != KIND_DELIMITER or sum(1 for ch, kind in zip(operand, kinds) if ch == "`" and kind == KIND_DELIMITER) != 2:
        return None
    return operand[1:-1]


class PreferTemplateFixer(BaseFixer):
    """Rewrites a ``+`` concatenation involving strings as a template literal.

    String literal operands are inlined (with backticks and ``${`` escaped),
    template operands are spliced in, and every other operand becomes an
    interpolation. At least one of the first two operands must be a string,
    otherwise the leading ``+`` could be numeric addition.
    """

    rule_id = "prefer-template"
    complexity = "complex"
    description = "Replace string concatenation with template literals"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        start, end = self._expression(code, diagnostic)
        operands = split_top_level(code[start:end], "+")
        return len(operands) > 1 and any(self._is_textual(op.strip()) for op in operands[:2])

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        start, end = self._expression(code, diagnostic)
        text = code[start:end]
        masked = mask_literals(text)
        if KIND_COMMENT in scan_kinds(text):
            raise self.refuse("concatenation contains comments")
        if _LOOSER_OPERATORS.search(_top_level(masked)):
            raise self.refuse("concatenation mixes in other operators")

        operands = [op.strip() for op in split_top_level(text, "+")]
        if any(not op for op in operands):
            raise self.refuse("unary plus inside concatenation")
        if not any(self._is_textual(op) for op in operands[:2]):
            raise self.refuse("leading operands may be numeric addition")

        pieces: list[str] = []
        for operand in operands:
            literal = string_literal_content(operand)
            if literal is not None:
                quote = operand[0]
                literal = _ESCAPE.sub(
                    lambda m: m.group(1) if m.group(1) == quote else m.group(0), literal
                )
                pieces.append(literal.replace("`", "\\`").replace("${", "\\${"))
                continue
            template = template_content(operand)
            if template is not None:
                pieces.append(template)
                continue
            pieces.append("${" + operand + "}")
        return code[:start] + "`" + "".join(pieces) + "`" + code[end:]

    def _expression(self, code: str, diagnostic: Diagnostic) -> tuple[int, int]:
        start = absolute_offset(code, diagnostic.line, diagnostic.column)
        return start, expression_end(mask_literals(code), start)

    def _is_textual(self, operand: str) -> bool:
        return string_literal_content(operand) is not None or template_content(operand) is not None

    def _check_invariant(self, before: str, after: str) -> bool:
        return (
            mask_literals(after).count("+") < mask_literals(before).count("+")
            and delimiter_count(after, "`") >= delimiter_count(before, "`")
        )


def _top_level(masked: str) -> str:
    """Blank out everything nested inside brackets."""
    depth = 0
    out: list[str] = []
    for ch in masked:
        if ch in "([{":
            depth += 1
            out.append(" ")
        elif ch in ")]}":
            depth -= 1
            out.append(" ")
        else:
            out.append(ch if depth == 0 else " ")
    return "".join(out)
