"""Fixer for the ``no-ternary`` rule."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from jsmend.context import KIND_COMMENT, mask_literals, scan_kinds
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.utils import (
    IDENTIFIER,
    bracket_counts,
    find_top_level_assignment,
    get_line,
    leading_whitespace,
    line_start_offset,
    masked_line,
    replace_line,
)
from jsmend.fixers.whitespace import detect_indent_unit
from jsmend.models import Diagnostic
from jsmend.validators.code_validator import count_keyword

_DECLARATION = re.compile(rf"^(const|let|var)\s+({IDENTIFIER})\s*=\s*")
_RETURN = re.compile(r"^return\s+")
_ASSIGNMENT = re.compile(rf"^({IDENTIFIER}(?:\s*\.\s*{IDENTIFIER})*)\s*=(?![=>])\s*")


@dataclass
class Conditional:
    """The three parts of a ``test ? consequent : alternate`` expression."""

    test: str
    consequent: str
    alternate: str


def split_conditional(text: str) -> Conditional | None:
    """Split a conditional expression at its top-level ``?`` and matching ``:``."""
    masked = mask_literals(text)
    depth = 0
    question = -1
    nested = 0
    for i, ch in enumerate(masked):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif depth != 0:
            continue
        elif ch == "?":
            if masked[i + 1 : i + 2] in ("?", ".") or masked[i - 1 : i] == "?":
                continue
            if question == -1:
                question = i
            else:
                nested += 1
        elif ch == ":" and question != -1:
            if nested:
                nested -= 1
                continue
            return Conditional(
                test=text[:question].strip(),
                consequent=text[question + 1 : i].strip(),
                alternate=text[i + 1 :].strip(),
            )
    return None


def _balanced(text: str) -> bool:
    counts = bracket_counts(text)
    return counts["("] == counts[")"] and counts["["] == counts["]"] and counts["{"] == counts["}"]


class NoTernaryFixer(BaseFixer):
    """Expands a single-line conditional expression into an if/else block.

    Supported roles: variable initializer, assignment, return value, arrow
    function body, and bare expression statement. A ``const`` initializer
    becomes an uninitialised ``let`` assigned in both branches.
    """

    rule_id = "no-ternary"
    complexity = "complex"
    description = "Expand conditional expressions into if/else statements"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        masked = masked_line(code, diagnostic.line)
        return "?" in masked and split_conditional(get_line(code, diagnostic.line)) is not None

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        line = get_line(code, diagnostic.line)
        start = line_start_offset(code, diagnostic.line)
        kinds = scan_kinds(code)[start : start + len(line)]
        if KIND_COMMENT in kinds:
            raise self.refuse("line contains a comment")

        indent = leading_whitespace(line)
        unit = detect_indent_unit(code)
        statement = line.strip()
        terminated = statement.endswith(";")
        if terminated:
            statement = statement[:-1].rstrip()
        masked = mask_literals(statement)

        arrow = self._top_level_arrow(masked)
        if arrow != -1:
            head = statement[: arrow + 2]
            body = self._expand(statement[arrow + 2 :], lambda v: f"return {v};", indent + unit, unit)
            tail = ";" if terminated else ""
            return replace_line(code, diagnostic.line, f"{indent}{head} {{\n{body}\n{indent}}}{tail}")

        match = _DECLARATION.match(masked)
        if match is not None:
            keyword = "let" if match.group(1) == "const" else match.group(1)
            name = match.group(2)
            block = self._expand(statement[match.end() :], lambda v: f"{name} = {v};", indent, unit)
            return replace_line(code, diagnostic.line, f"{indent}{keyword} {name};\n{block}")

        match = _RETURN.match(masked)
        if match is not None:
            block = self._expand(statement[match.end() :], lambda v: f"return {v};", indent, unit)
            return replace_line(code, diagnostic.line, block)

        match = _ASSIGNMENT.match(masked)
        if match is not None:
            target = re.sub(r"\s+", "", match.group(1))
            block = self._expand(statement[match.end() :], lambda v: f"{target} = {v};", indent, unit)
            return replace_line(code, diagnostic.line, block)

        if find_top_level_assignment(statement) != -1:
            raise self.refuse("conditional is part of an unsupported statement")
        block = self._expand(statement, lambda v: f"{v};", indent, unit)
        return replace_line(code, diagnostic.line, block)

    def _expand(
        self, expression: str, branch: Callable[[str], str], indent: str, unit: str
    ) -> str:
        """Build the if/else block for expression, rendering each branch with branch()."""
        conditional = split_conditional(expression)
        if conditional is None:
            raise self.refuse("no conditional expression in the statement")
        parts = (conditional.test, conditional.consequent, conditional.alternate)
        if not all(parts) or not all(_balanced(part) for part in parts):
            raise self.refuse("conditional does not cover the whole statement")
        inner = indent + unit
        return (
            f"{indent}if ({conditional.test}) {{\n"
            f"{inner}{branch(conditional.consequent)}\n"
            f"{indent}}} else {{\n"
            f"{inner}{branch(conditional.alternate)}\n"
            f"{indent}}}"
        )

    def _top_level_arrow(self, masked: str) -> int:
        depth = 0
        for i, ch in enumerate(masked):
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                depth -= 1
            elif depth == 0 and masked.startswith("=>", i):
                return i
        return -1

    def _check_invariant(self, before: str, after: str) -> bool:
        return count_keyword(after, "if") == count_keyword(before, "if") + 1
