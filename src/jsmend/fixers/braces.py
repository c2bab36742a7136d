"""Block brace fixers: ``curly`` and ``brace-style``."""

from __future__ import annotations

import re

from jsmend.context import mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.scope import find_keyword_on_line
from jsmend.fixers.utils import (
    bracket_counts,
    find_matching,
    find_matching_backward,
    get_line,
    leading_whitespace,
    line_start_offset,
    masked_line,
    replace_line,
    statement_end,
)
from jsmend.fixers.whitespace import detect_indent_unit
from jsmend.models import Diagnostic

CURLY_KEYWORDS = ("if", "else", "for", "while", "do")
NESTED_CONTROL = re.compile(r"(if|for|while|do|switch|try|function|class)(?![\w$])")

_CURLY_MESSAGE = re.compile(r"after '(\w+)'")
_JOINED_KEYWORDS = re.compile(r"(else|catch|finally)(?![\w$])")


class CurlyFixer(BaseFixer):
    """Wraps the unbraced body of a control statement in a block."""

    rule_id = "curly"
    complexity = "complex"
    description = "Add braces around control statement bodies"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._locate(code, diagnostic) is not None

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        located = self._locate(code, diagnostic)
        if located is None:
            raise self.refuse("no unbraced control statement at the reported position")
        keyword_offset, head_end, body_start = located
        masked = mask_literals(code)

        if masked[body_start] == ";":
            raise self.refuse("empty statement body")
        if NESTED_CONTROL.match(masked, body_start):
            raise self.refuse("body is itself a control statement")

        body_end = statement_end(masked, body_start)
        body = code[body_start:body_end].rstrip()
        if not body:
            raise self.refuse("statement body not found")

        line_start = code.rfind("\n", 0, keyword_offset) + 1
        indent = leading_whitespace(code[line_start:keyword_offset + 1])
        inner = indent + detect_indent_unit(code)
        block = " {\n" + inner + body + "\n" + indent + "}"
        return code[:head_end] + block + code[body_start + len(body) :]

    def _locate(self, code: str, diagnostic: Diagnostic) -> tuple[int, int, int] | None:
        """Return (keyword offset, head end, body start) of an unbraced statement."""
        masked = mask_literals(code)
        match = _CURLY_MESSAGE.search(diagnostic.message)
        keywords = (match.group(1),) if match and match.group(1) in CURLY_KEYWORDS else CURLY_KEYWORDS

        candidates = [
            offset
            for offset in (
                find_keyword_on_line(code, masked, diagnostic.line, diagnostic.column, kw)
                for kw in keywords
            )
            if offset != -1
        ]
        if not candidates:
            return None
        target = line_start_offset(code, diagnostic.line) + diagnostic.column - 1
        keyword_offset = min(candidates, key=lambda o: abs(o - target))
        keyword = re.match(r"[a-z]+", masked[keyword_offset:]).group(0)

        head_end = keyword_offset + len(keyword)
        if keyword in ("if", "for", "while"):
            paren = head_end
            while paren < len(masked) and masked[paren] in " \t\n":
                paren += 1
            if paren >= len(masked) or masked[paren] != "(":
                return None
            close = find_matching(masked, paren)
            if close == -1:
                return None
            head_end = close + 1

        body_start = head_end
        while body_start < len(masked) and masked[body_start] in " \t\n":
            body_start += 1
        if body_start >= len(masked) or masked[body_start] == "{":
            return None
        if keyword == "else" and masked.startswith("if", body_start):
            return None
        if keyword == "while" and masked[body_start] == ";":
            # The tail of a do-while loop
            return None
        return keyword_offset, head_end, body_start

    def _check_invariant(self, before: str, after: str) -> bool:
        counts_before = bracket_counts(before)
        counts_after = bracket_counts(after)
        return (
            counts_after["{"] == counts_before["{"] + 1
            and counts_after["}"] == counts_before["}"] + 1
        )


OPENING_NOT_SAME_LINE = "Opening curly brace does not appear on the same line"
BODY_ON_SAME_LINE = "Statement inside of curly braces should be on next line"
CLOSING_NOT_JOINED = "Closing curly brace does not appear on the same line as the subsequent block"
CLOSING_ON_SAME_LINE = "Closing curly brace should be on the same line as opening curly brace"


class BraceStyleFixer(BaseFixer):
    """Repairs one-true-brace-style violations.

    Handles four shapes: an opening brace alone on its own line, a block
    body on the opening brace's line, ``else``/``catch``/``finally`` on the
    line after the closing brace, and a closing brace trailing a statement.
    Comments in the way are never moved; such instances are refused.
    """

    rule_id = "brace-style"
    complexity = "simple"
    description = "Place braces in one-true-brace style"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        message = diagnostic.message
        masked = masked_line(code, diagnostic.line)
        if OPENING_NOT_SAME_LINE in message:
            return masked.lstrip().startswith("{") and diagnostic.line > 1
        if BODY_ON_SAME_LINE in message:
            return self._open_brace_with_body(masked, diagnostic.column - 1) != -1
        if CLOSING_NOT_JOINED in message:
            return self._next_code_line(code, diagnostic.line) is not None and masked.rstrip().endswith("}")
        if CLOSING_ON_SAME_LINE in message:
            return self._closing_after_statement(masked, diagnostic.column - 1) != -1
        return False

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        message = diagnostic.message
        if OPENING_NOT_SAME_LINE in message:
            return self._pull_up_opening(code, diagnostic.line)
        if BODY_ON_SAME_LINE in message:
            return self._split_after_opening(code, diagnostic)
        if CLOSING_NOT_JOINED in message:
            return self._join_following_block(code, diagnostic.line)
        return self._split_before_closing(code, diagnostic)

    def _pull_up_opening(self, code: str, line: int) -> str:
        previous = get_line(code, line - 1)
        previous_masked = masked_line(code, line - 1)
        if not previous.strip():
            raise self.refuse("no controlling statement on the previous line")
        if previous.rstrip() != previous_masked.rstrip():
            raise self.refuse("previous line ends in a comment")
        if previous_masked.rstrip().endswith((";", "{", "}")):
            raise self.refuse("opening brace starts a standalone block")

        current = get_line(code, line)
        rest = current.lstrip()[1:].strip()
        lines = code.split("\n")
        lines[line - 2] = previous.rstrip() + " {"
        if rest:
            lines[line - 1] = leading_whitespace(current) + rest
        else:
            del lines[line - 1]
        return "\n".join(lines)

    def _split_after_opening(self, code: str, diagnostic: Diagnostic) -> str:
        masked = masked_line(code, diagnostic.line)
        index = self._open_brace_with_body(masked, diagnostic.column - 1)
        if index == -1:
            raise self.refuse("no block body on the opening brace line")
        line = get_line(code, diagnostic.line)
        indent = leading_whitespace(line)
        body = line[index + 1 :].strip()
        new_text = line[: index + 1].rstrip() + "\n" + indent + detect_indent_unit(code) + body
        return replace_line(code, diagnostic.line, new_text)

    def _join_following_block(self, code: str, line: int) -> str:
        following = self._next_code_line(code, line)
        if following is None:
            raise self.refuse("no else, catch or finally after the closing brace")
        current = get_line(code, line)
        if current.rstrip() != masked_line(code, line).rstrip():
            raise self.refuse("closing brace line ends in a comment")
        lines = code.split("\n")
        lines[line - 1] = current.rstrip() + " " + lines[following - 1].lstrip()
        del lines[line:following]
        return "\n".join(lines)

    def _split_before_closing(self, code: str, diagnostic: Diagnostic) -> str:
        masked = masked_line(code, diagnostic.line)
        index = self._closing_after_statement(masked, diagnostic.column - 1)
        if index == -1:
            raise self.refuse("no closing brace after a statement")
        full = mask_literals(code)
        opener = find_matching_backward(full, line_start_offset(code, diagnostic.line) + index)
        if opener == -1:
            raise self.refuse("closing brace has no matching opening brace")
        opener_line_start = code.rfind("\n", 0, opener) + 1
        indent = leading_whitespace(code[opener_line_start:opener])
        line = get_line(code, diagnostic.line)
        new_text = line[:index].rstrip() + "\n" + indent + line[index:]
        return replace_line(code, diagnostic.line, new_text)

    def _open_brace_with_body(self, masked: str, column: int) -> int:
        braces = [i for i, ch in enumerate(masked) if ch == "{" and masked[i + 1 :].strip()]
        if not braces:
            return -1
        return min(braces, key=lambda i: abs(i - column))

    def _closing_after_statement(self, masked: str, column: int) -> int:
        braces = [i for i, ch in enumerate(masked) if ch == "}" and masked[:i].strip()]
        braces = [i for i in braces if not masked[:i].rstrip().endswith("{")]
        if not braces:
            return -1
        return min(braces, key=lambda i: abs(i - column))

    def _next_code_line(self, code: str, line: int) -> int | None:
        """Return the next non-blank line if it starts with else/catch/finally."""
        lines = code.split("\n")
        for number in range(line + 1, len(lines) + 1):
            text = masked_line(code, number).strip()
            if not text:
                if lines[number - 1].strip():
                    return None
                continue
            return number if _JOINED_KEYWORDS.match(text) else None
        return None

    def _check_invariant(self, before: str, after: str) -> bool:
        return bracket_counts(before) == bracket_counts(after)
