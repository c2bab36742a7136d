"""Fixer for the ``prefer-for-of`` rule."""

from __future__ import annotations

import re

from jsmend.context import mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.scope import function_scope
from jsmend.fixers.utils import (
    IDENTIFIER,
    find_matching,
    is_property_access,
    line_start_offset,
    word_pattern,
)
from jsmend.models import Diagnostic

GENERIC_ELEMENT_NAMES = ("item", "element")
MUTATING_METHODS = ("push", "pop", "shift", "unshift", "splice")
RESERVED_WORDS = frozenset(
    {
        "break", "case", "catch", "class", "const", "continue", "debugger", "default",
        "delete", "do", "else", "export", "extends", "false", "finally", "for",
        "function", "if", "import", "in", "instanceof", "let", "new", "null", "of",
        "return", "static", "super", "switch", "this", "throw", "true", "try",
        "typeof", "var", "void", "while", "with", "yield", "await", "enum",
    }
)

_COLLECTION = rf"{IDENTIFIER}(?:\.{IDENTIFIER})*"
_COUNTED_HEADER = re.compile(
    rf"""^\s*(?P<kw>let|var)\s+(?P<i>{IDENTIFIER})\s*=\s*0\s*;
    \s*(?P=i)\s*<\s*(?P<arr>{_COLLECTION})\s*\.\s*length\s*;
    \s*(?:(?P=i)\s*\+\+|\+\+\s*(?P=i)|(?P=i)\s*\+=\s*1|(?P=i)\s*=\s*(?P=i)\s*\+\s*1)\s*$""",
    re.VERBOSE,
)
_WRITE_AFTER = re.compile(r"\s*(\+\+|--|[+\-*/%&|^]=|\*\*=|<<=|>>>?=|=(?![=>]))")
_FOR_OF = re.compile(rf"(?<![\w$])for\s*\(\s*(?:const|let|var)\s+{IDENTIFIER}\s+of\s")


def singularize(collection: str) -> str | None:
    """Derive an element name from a collection name, or None if there is none."""
    base = collection.rsplit(".", 1)[-1]
    for suffix in ("List", "Array"):
        if base.endswith(suffix) and len(base) > len(suffix):
            return base[: -len(suffix)]
    if base.endswith("s") and len(base) > 1:
        return base[:-1]
    return None


class PreferForOfFixer(BaseFixer):
    """Turns an index-counting ``for`` loop into a ``for...of`` loop.

    The loop must count from 0 to ``arr.length`` in steps of one, and the
    index may only appear as ``arr[i]`` reads in the body. The array must
    not be mutated inside the loop.
    """

    rule_id = "prefer-for-of"
    complexity = "complex"
    description = "Convert counted loops over arrays to for...of"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return self._parse_loop(code, diagnostic) is not None

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        loop = self._parse_loop(code, diagnostic)
        if loop is None:
            raise self.refuse("no counted loop over an array at the reported position")
        paren, close, body_open, body_close, match = loop
        masked = mask_literals(code)
        index = match.group("i")
        collection = match.group("arr")

        accesses = self._element_accesses(masked, body_open + 1, body_close, index, collection)
        if self._mutates(masked[body_open + 1 : body_close], collection):
            raise self.refuse(f"'{collection}' is modified inside the loop")
        if match.group("kw") == "var" and self._used_after(masked, body_close, index):
            raise self.refuse(f"'{index}' is used after the loop")

        element = self._element_name(masked, paren, collection, index)
        body = code[body_open:body_close]
        for start, end in reversed(accesses):
            body = body[: start - body_open] + element + body[end - body_open :]
        header = f"(const {element} of {collection})"
        return code[:paren] + header + code[close + 1 : body_open] + body + code[body_close:]

    def _parse_loop(self, code: str, diagnostic: Diagnostic) -> tuple[int, int, int, int, re.Match[str]] | None:
        masked = mask_literals(code)
        line_start = line_start_offset(code, diagnostic.line)
        line_end = masked.find("\n", line_start)
        line_end = len(masked) if line_end == -1 else line_end
        keyword = re.compile(r"(?<![\w$.])for\s*\(").search(masked, line_start, line_end)
        if keyword is None:
            return None
        paren = keyword.end() - 1
        close = find_matching(masked, paren)
        if close == -1:
            return None
        match = _COUNTED_HEADER.match(code[paren + 1 : close])
        if match is None:
            return None
        body_open = close + 1
        while body_open < len(masked) and masked[body_open] in " \t\n":
            body_open += 1
        if body_open >= len(masked) or masked[body_open] != "{":
            return None
        body_close = find_matching(masked, body_open)
        if body_close == -1:
            return None
        return paren, close, body_open, body_close, match

    def _element_accesses(
        self, masked: str, start: int, end: int, index: str, collection: str
    ) -> list[tuple[int, int]]:
        """Return spans of every ``collection[index]`` read in the body.

        Raises:
            FixerCannotHandleError: If the index is used in any other way.
        """
        access_before = re.compile(rf"(?<![\w$.]){re.escape(collection)}\s*\[\s*$")
        spans: list[tuple[int, int]] = []
        for match in word_pattern(index).finditer(masked, start, end):
            offset = match.start()
            if is_property_access(masked, offset):
                continue
            before = access_before.search(masked, start, offset)
            after = re.compile(r"\s*\]").match(masked, match.end())
            if before is None or after is None:
                raise self.refuse(f"loop index '{index}' is used beyond element access")
            if _WRITE_AFTER.match(masked, after.end()) or masked[:before.start()].rstrip().endswith(("++", "--")):
                raise self.refuse(f"'{collection}[{index}]' is assigned inside the loop")
            spans.append((before.start(), after.end()))
        if not spans:
            raise self.refuse("loop body never reads the current element")
        return spans

    def _mutates(self, body: str, collection: str) -> bool:
        name = re.escape(collection)
        methods = "|".join(MUTATING_METHODS)
        if re.search(rf"(?<![\w$.]){name}\s*\.\s*(?:{methods})\s*\(", body):
            return True
        if re.search(rf"(?<![\w$.]){name}\s*\.\s*length\s*=(?!=)", body):
            return True
        return bool(re.search(rf"(?<![\w$.]){name}\s*=(?![=>])", body))

    def _used_after(self, masked: str, body_close: int, index: str) -> bool:
        _, fn_end = function_scope(masked, body_close)
        return any(
            not is_property_access(masked, m.start())
            for m in word_pattern(index).finditer(masked, body_close + 1, fn_end)
        )

    def _element_name(self, masked: str, loop_start: int, collection: str, index: str) -> str:
        fn_start, fn_end = function_scope(masked, loop_start)
        taken = {collection.split(".")[0], index}
        candidates = [singularize(collection), *GENERIC_ELEMENT_NAMES]
        for name in candidates:
            if not name or name in RESERVED_WORDS or name in taken:
                continue
            if not re.fullmatch(IDENTIFIER, name):
                continue
            if any(
                not is_property_access(masked, m.start())
                for m in word_pattern(name).finditer(masked, fn_start, fn_end)
            ):
                continue
            return name
        raise self.refuse("no free name for the loop element")

    def _check_invariant(self, before: str, after: str) -> bool:
        return len(_FOR_OF.findall(mask_literals(after))) - len(_FOR_OF.findall(mask_literals(before))) == 1
