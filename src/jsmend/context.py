"""Lexical context analysis for JavaScript source text.

Determines whether an offset lies inside a string, comment, regular
expression literal or template literal. Everything that needs to know
"is this real code?" goes through this module, so the scanner can be
swapped for a real tokenizer without touching any fixer.

The scanner is a single left-to-right pass. A ``/`` starts a regular
expression only when the previous significant token permits an
expression there (an operator, an opening bracket, the closing paren of
an ``if``/``while``/``for`` head, or one of a few keywords such as
``return``); otherwise it is division.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from jsmend.models import Context, Diagnostic, SafeZone

# Per-character kinds produced by scan_kinds()
KIND_CODE = "c"
KIND_DELIMITER = "q"
KIND_STRING = "s"
KIND_COMMENT = "m"
KIND_REGEX = "r"
KIND_TEMPLATE = "t"

REGEX_PRECEDERS = frozenset("([{,;:!&|?+-*/%=<>^~")
REGEX_KEYWORDS = frozenset(
    {
        "return",
        "throw",
        "case",
        "in",
        "of",
        "delete",
        "void",
        "typeof",
        "new",
        "instanceof",
        "yield",
        "await",
        "else",
        "do",
    }
)
# Keywords whose parenthesised head is followed by a statement, not an operand
CONTROL_HEADS = frozenset({"if", "while", "for", "with"})

DEFAULT_CACHE_SIZE = 1000


def absolute_offset(source: str, line: int, column: int) -> int:
    """Convert a 1-based line/column pair into an absolute offset.

    Args:
        source: Source text.
        line: 1-based line number.
        column: 1-based column number. May point one past the end of the line.

    Returns:
        0-based offset into source.

    Raises:
        ValueError: If the position lies outside the source.
    """
    lines = source.split("\n")
    if line < 1 or line > len(lines):
        raise ValueError(f"Line {line} is outside the source (1..{len(lines)})")
    if column < 1 or column > len(lines[line - 1]) + 1:
        raise ValueError(
            f"Column {column} is outside line {line} (1..{len(lines[line - 1]) + 1})"
        )
    return sum(len(text) + 1 for text in lines[: line - 1]) + column - 1


def line_column(source: str, offset: int) -> tuple[int, int]:
    """Convert an absolute offset into a 1-based (line, column) pair."""
    offset = max(0, min(offset, len(source)))
    line = source.count("\n", 0, offset) + 1
    line_start = source.rfind("\n", 0, offset) + 1
    return line, offset - line_start + 1


@dataclass
class _ScanState:
    mode: str = "code"
    quote: str | None = None
    template_depth: int = 0
    interpolations: list[int] = field(default_factory=list)
    regex_allowed: bool = True
    in_class: bool = False
    word: str = ""
    in_word: bool = False
    after_word: bool = False
    parens: list[bool] = field(default_factory=list)

    def to_context(self) -> Context:
        in_string = self.mode == "string"
        in_comment = self.mode in ("line_comment", "block_comment")
        in_template = self.template_depth > 0
        string_char: str | None = None
        if in_string:
            string_char = self.quote
        elif in_template:
            string_char = "`"
        comment_type: Any = None
        if in_comment:
            comment_type = "single" if self.mode == "line_comment" else "multi"
        return Context(
            in_string=in_string,
            in_comment=in_comment,
            in_regex=self.mode == "regex",
            in_template=in_template,
            in_template_expression=in_template and self.mode != "template",
            string_char=string_char,
            comment_type=comment_type,
        )


def _scan(source: str, stop: int, kinds: list[str] | None = None) -> _ScanState:
    """Run the lexer over source[:stop], optionally recording per-char kinds."""
    st = _ScanState()
    length = len(source)
    end = min(stop, length)
    i = 0

    def mark(kind: str, count: int = 1) -> None:
        if kinds is not None:
            kinds.extend(kind * min(count, length - len(kinds)))

    while i < end:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < length else ""
        mode = st.mode

        if mode == "line_comment":
            if ch == "\n":
                st.mode = "code"
                mark(KIND_CODE)
            else:
                mark(KIND_COMMENT)
            i += 1
            continue

        if mode == "block_comment":
            if ch == "*" and nxt == "/":
                st.mode = "code"
                mark(KIND_COMMENT, 2)
                i += 2
            else:
                mark(KIND_COMMENT)
                i += 1
            continue

        if mode == "string":
            if ch == "\\":
                mark(KIND_STRING, 2)
                i += 2
            elif ch == st.quote:
                st.mode = "code"
                st.quote = None
                st.regex_allowed = False
                mark(KIND_DELIMITER)
                i += 1
            elif ch == "\n":
                # Unterminated string literal; resume as code on the next line
                st.mode = "code"
                st.quote = None
                mark(KIND_CODE)
                i += 1
            else:
                mark(KIND_STRING)
                i += 1
            continue

        if mode == "regex":
            if ch == "\\":
                mark(KIND_REGEX, 2)
                i += 2
                continue
            if ch == "\n":
                st.mode = "code"
                st.in_class = False
                mark(KIND_CODE)
                i += 1
                continue
            if st.in_class:
                if ch == "]":
                    st.in_class = False
            elif ch == "[":
                st.in_class = True
            elif ch == "/":
                st.mode = "code"
                st.regex_allowed = False
                st.in_word = False
            mark(KIND_REGEX)
            i += 1
            continue

        if mode == "template":
            if ch == "\\":
                mark(KIND_TEMPLATE, 2)
                i += 2
            elif ch == "`":
                st.template_depth -= 1
                st.mode = "code"
                st.regex_allowed = False
                mark(KIND_DELIMITER)
                i += 1
            elif ch == "$" and nxt == "{":
                st.interpolations.append(0)
                st.mode = "code"
                st.regex_allowed = True
                st.in_word = False
                mark(KIND_CODE, 2)
                i += 2
            else:
                mark(KIND_TEMPLATE)
                i += 1
            continue

        # Plain code
        if ch == "/" and nxt == "/":
            st.mode = "line_comment"
            mark(KIND_COMMENT, 2)
            i += 2
            continue
        if ch == "/" and nxt == "*":
            st.mode = "block_comment"
            mark(KIND_COMMENT, 2)
            i += 2
            continue
        if ch == "/" and st.regex_allowed:
            st.mode = "regex"
            st.in_class = False
            st.after_word = False
            mark(KIND_REGEX)
            i += 1
            continue
        if ch in ("'", '"'):
            st.mode = "string"
            st.quote = ch
            st.in_word = False
            st.after_word = False
            mark(KIND_DELIMITER)
            i += 1
            continue
        if ch == "`":
            st.template_depth += 1
            st.mode = "template"
            st.in_word = False
            st.after_word = False
            mark(KIND_DELIMITER)
            i += 1
            continue
        if st.interpolations:
            if ch == "{":
                st.interpolations[-1] += 1
            elif ch == "}":
                if st.interpolations[-1] == 0:
                    st.interpolations.pop()
                    st.mode = "template"
                    mark(KIND_CODE)
                    i += 1
                    continue
                st.interpolations[-1] -= 1

        if ch.isalnum() or ch in "_$":
            if st.in_word:
                st.word += ch
            else:
                st.word = ch
                st.in_word = True
            st.regex_allowed = st.word in REGEX_KEYWORDS
            st.after_word = True
        elif ch.isspace():
            st.in_word = False
        else:
            st.in_word = False
            if ch == "(":
                st.parens.append(st.after_word and st.word in CONTROL_HEADS)
                st.regex_allowed = True
            elif ch == ")":
                # After `if (...)` a statement starts, so `/` opens a regex
                st.regex_allowed = st.parens.pop() if st.parens else False
            else:
                st.regex_allowed = ch in REGEX_PRECEDERS
            st.after_word = False
        mark(KIND_CODE)
        i += 1

    return st


def scan_kinds(source: str) -> str:
    """Classify every character of source.

    Returns:
        A string the same length as source where each character is one of
        the ``KIND_*`` codes. String and template delimiters are reported as
        ``KIND_DELIMITER``; ``${`` and its closing ``}`` are code.
    """
    kinds: list[str] = []
    _scan(source, len(source), kinds)
    return "".join(kinds)


def mask_literals(source: str, fill: str = " ") -> str:
    """Blank out string contents, comments, regex literals and template text.

    Offsets and newlines are preserved, so patterns found in the masked text
    map one-to-one onto the original. String and template delimiters are kept.
    """
    kinds = scan_kinds(source)
    return "".join(
        ch if kind in (KIND_CODE, KIND_DELIMITER) or ch == "\n" else fill
        for ch, kind in zip(source, kinds)
    )


class ContextAnalyzer:
    """Classifies source offsets as code, string, comment, regex or template text.

    Results are cached per (source length, offset). The cache is dropped as
    soon as a different source string is queried, so a cached context is
    never served for a stale version of the text.

    Attributes:
        cache_size: Maximum number of cached contexts.
    """

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.cache_size = cache_size
        self._cache: dict[tuple[int, int], Context] = {}
        self._cached_source: str | None = None

    def classify(self, source: str, offset: int) -> Context:
        """Return the lexical context at an absolute offset.

        Args:
            source: Source text.
            offset: 0-based offset. Clamped to the source bounds.

        Returns:
            Context describing the state before the character at offset.
        """
        offset = max(0, min(offset, len(source)))
        if source is not self._cached_source and source != self._cached_source:
            self._cache.clear()
            self._cached_source = source

        key = (len(source), offset)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        context = _scan(source, offset).to_context()
        if len(self._cache) >= self.cache_size:
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = context
        return context

    def analyze_position(self, source: str, line: int, column: int) -> Context:
        """Return the lexical context at a 1-based line/column position.

        Raises:
            ValueError: If the position lies outside the source.
        """
        return self.classify(source, absolute_offset(source, line, column))

    def is_safe_edit_zone(self, source: str, diagnostic: Diagnostic) -> SafeZone:
        """Decide whether the diagnostic's position may be edited.

        Never raises; positions outside the source are reported as unsafe.

        Args:
            source: Source text.
            diagnostic: Diagnostic whose line/column is checked.

        Returns:
            SafeZone with the verdict, a reason and the computed context.
        """
        try:
            context = self.analyze_position(source, diagnostic.line, diagnostic.column)
        except ValueError as e:
            return SafeZone(is_safe=False, reason=f"Position is invalid: {e}")

        if context.in_string:
            return SafeZone(
                is_safe=False,
                reason=f"Position is inside a string literal ({context.string_char})",
                context=context,
            )
        if context.in_comment:
            return SafeZone(
                is_safe=False,
                reason=f"Position is inside a {context.comment_type} comment",
                context=context,
            )
        if context.in_regex:
            return SafeZone(
                is_safe=False,
                reason="Position is inside a regular expression literal",
                context=context,
            )
        if context.in_template and not context.in_template_expression:
            return SafeZone(
                is_safe=False,
                reason="Position is inside template literal text",
                context=context,
            )
        return SafeZone(is_safe=True, reason="Position is safe for modifications", context=context)

    def is_in_string(self, source: str, offset: int) -> bool:
        return self.classify(source, offset).in_string

    def is_in_comment(self, source: str, offset: int) -> bool:
        return self.classify(source, offset).in_comment

    def is_in_regex(self, source: str, offset: int) -> bool:
        return self.classify(source, offset).in_regex

    def is_in_template(self, source: str, offset: int) -> bool:
        return self.classify(source, offset).in_template

    def clear_cache(self) -> None:
        """Drop all cached contexts."""
        self._cache.clear()
        self._cached_source = None

    def cache_stats(self) -> dict[str, int]:
        """Return cache size information."""
        return {"size": len(self._cache), "max_size": self.cache_size}
