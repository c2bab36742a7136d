"""Text utilities shared by fixers.

All offsets are 0-based; line and column arguments are 1-based to match
diagnostics. Functions that scan structure expect *masked* text (see
``jsmend.context.mask_literals``) so brackets and operators inside
strings and comments are ignored.
"""

from __future__ import annotations

import re

from jsmend.context import mask_literals

IDENTIFIER = r"[A-Za-z_$][\w$]*"
IDENTIFIER_RE = re.compile(rf"^{IDENTIFIER}$")

_OPENERS = "([{"
_CLOSERS = ")]}"
_CONTINUATION_END = tuple(",([{=+-*/%&|^!?:<>.")
_CONTINUATION_START = tuple(".,?:)]}+-*/%&|^=")


def get_line(code: str, line: int) -> str:
    """Return the text of a 1-based line, or an empty string if out of range."""
    lines = code.split("\n")
    if 1 <= line <= len(lines):
        return lines[line - 1]
    return ""


def line_start_offset(code: str, line: int) -> int:
    """Return the absolute offset of the first character of a 1-based line."""
    lines = code.split("\n")
    return sum(len(text) + 1 for text in lines[: line - 1])


def replace_line(code: str, line: int, new_text: str | None) -> str:
    """Replace a 1-based line with new_text, or delete it when new_text is None.

    new_text may contain newlines to expand one line into several.
    """
    lines = code.split("\n")
    if line < 1 or line > len(lines):
        raise ValueError(f"Line {line} is outside the source")
    if new_text is None:
        del lines[line - 1]
    else:
        lines[line - 1] = new_text
    return "\n".join(lines)


def safe_replace(code: str, start: int, end: int, replacement: str) -> str:
    """Replace code[start:end] with replacement.

    Raises:
        ValueError: If the range is not inside code.
    """
    if start < 0 or end > len(code) or start > end:
        raise ValueError("Invalid replacement bounds")
    return code[:start] + replacement + code[end:]


def leading_whitespace(text: str) -> str:
    return text[: len(text) - len(text.lstrip())]


def word_pattern(word: str) -> re.Pattern[str]:
    """Compile a pattern that matches word as a whole identifier."""
    return re.compile(rf"(?<![\w$]){re.escape(word)}(?![\w$])")


def is_property_access(masked: str, offset: int) -> bool:
    """True if the identifier at offset follows a member-access dot (``obj.name``)."""
    i = offset - 1
    while i >= 0 and masked[i] in " \t":
        i -= 1
    if i < 0 or masked[i] != ".":
        return False
    # Spread and rest (...name) are references, not property access
    return not masked[max(0, i - 2) : i + 1] == "..."


def find_matching(masked: str, open_index: int) -> int:
    """Return the index of the bracket closing the one at open_index, or -1."""
    opener = masked[open_index]
    closer = _CLOSERS[_OPENERS.index(opener)]
    depth = 0
    for i in range(open_index, len(masked)):
        ch = masked[i]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
    return -1


def find_matching_backward(masked: str, close_index: int) -> int:
    """Return the index of the bracket opening the one at close_index, or -1."""
    closer = masked[close_index]
    opener = _OPENERS[_CLOSERS.index(closer)]
    depth = 0
    for i in range(close_index, -1, -1):
        ch = masked[i]
        if ch == closer:
            depth += 1
        elif ch == opener:
            depth -= 1
            if depth == 0:
                return i
    return -1


def statement_end(masked: str, start: int) -> int:
    """Return the offset just past the statement that begins at start.

    A statement ends at a top-level ``;`` (included), at a closing bracket
    that belongs to an enclosing construct (excluded), or at a newline that
    automatic semicolon insertion would treat as a terminator (excluded).
    """
    depth = 0
    i = start
    length = len(masked)
    while i < length:
        ch = masked[i]
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth < 0:
                return i
        elif depth == 0 and ch == ";":
            return i + 1
        elif depth == 0 and ch == "\n":
            before = masked[start:i].rstrip()
            after = masked[i + 1 :].lstrip()
            continues = before.endswith(_CONTINUATION_END) or after.startswith(_CONTINUATION_START)
            if not continues:
                return i
        i += 1
    return length


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """Split text on separator characters that are not nested in brackets or literals."""
    masked = mask_literals(text)
    parts: list[str] = []
    depth = 0
    last = 0
    for i, ch in enumerate(masked):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == separator and depth == 0:
            parts.append(text[last:i])
            last = i + 1
    parts.append(text[last:])
    return parts


def find_top_level_assignment(text: str) -> int:
    """Return the index of the first top-level ``=`` assignment operator, or -1.

    Comparison and arrow operators (``==``, ``!=``, ``<=``, ``>=``, ``=>``) are skipped.
    """
    masked = mask_literals(text)
    depth = 0
    for i, ch in enumerate(masked):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == "=" and depth == 0:
            prev = masked[i - 1] if i > 0 else ""
            nxt = masked[i + 1] if i + 1 < len(masked) else ""
            if nxt in ("=", ">") or prev in ("=", "!", "<", ">"):
                continue
            return i
    return -1


def masked_line(code: str, line: int) -> str:
    """Return the masked text of one line, computed against the whole source."""
    masked = mask_literals(code)
    start = line_start_offset(code, line)
    end = masked.find("\n", start)
    return masked[start:] if end == -1 else masked[start:end]


def bracket_counts(code: str) -> dict[str, int]:
    """Count each bracket character outside literals and comments."""
    masked = mask_literals(code)
    return {ch: masked.count(ch) for ch in "()[]{}"}
