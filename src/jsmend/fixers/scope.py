"""Declaration, scope and usage analysis over masked source text.

Used by the fixers that need structural reasoning: deciding whether a
binding is ever reassigned, whether a ``var`` can be re-scoped to its
block, and whether a name is referenced at all. Scopes are found by
walking braces in masked text, so braces inside literals never count.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from jsmend.context import mask_literals
from jsmend.fixers.utils import (
    IDENTIFIER_RE,
    find_matching,
    find_matching_backward,
    find_top_level_assignment,
    is_property_access,
    line_start_offset,
    split_top_level,
    statement_end,
    word_pattern,
)

OccurrenceKind = Literal["declaration", "reference", "reassignment"]
ForKind = Literal["classic", "of", "in"]

NON_FUNCTION_HEADS = frozenset({"if", "for", "while", "switch", "catch", "with"})
LOOP_HEADS = frozenset({"for", "while"})

_REASSIGN_AFTER = re.compile(
    r"\s*(\+\+|--|\*\*=|>>>=|<<=|>>=|&&=|\|\|=|\?\?=|[+\-*/%&|^]=|=(?![=>]))"
)
_REASSIGN_BEFORE = re.compile(r"(\+\+|--)\s*$")
_FOR_HEAD_BEFORE = re.compile(r"for\s*\(\s*$")
_FOR_IN_OF_AFTER = re.compile(r"\s+(of|in)\b")

_REASSIGNMENT_TYPES = {
    "++": "increment",
    "--": "decrement",
    "=": "assignment",
    "+=": "add-assign",
    "-=": "subtract-assign",
    "*=": "multiply-assign",
    "/=": "divide-assign",
    "%=": "modulo-assign",
}


@dataclass(frozen=True)
class Occurrence:
    """One syntactic occurrence of an identifier.

    Attributes:
        name: The identifier.
        offset: Absolute offset of the identifier.
        kind: declaration, reference or reassignment.
        reassignment_type: For reassignments, e.g. "increment" or "add-assign".
    """

    name: str
    offset: int
    kind: OccurrenceKind
    reassignment_type: str | None = None


@dataclass
class Declaration:
    """A ``var``/``let``/``const`` statement located in the source.

    Attributes:
        keyword: The declaration keyword.
        start: Offset of the keyword.
        end: Offset just past the statement.
        declarators: Raw declarator texts (``a = 1``, ``{b, c} = obj``).
        names: All bound names, including destructured ones.
        initialized: True if every declarator has an initializer.
        for_kind: Loop flavour when the declaration heads a ``for`` statement.
        for_paren: Offset of the ``for`` statement's opening parenthesis.
    """

    keyword: str
    start: int
    end: int
    declarators: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    initialized: bool = True
    for_kind: ForKind | None = None
    for_paren: int = -1

    @property
    def in_for_header(self) -> bool:
        return self.for_kind is not None


def binding_names(pattern: str) -> list[str]:
    """Return the names bound by a declarator target.

    Handles plain identifiers and (nested) object/array destructuring with
    defaults, renames and rest elements.
    """
    p = pattern.strip()
    if p.startswith("..."):
        p = p[3:].strip()
    eq = find_top_level_assignment(p)
    if eq != -1:
        p = p[:eq].strip()

    if p.startswith("{") and p.endswith("}"):
        names: list[str] = []
        for part in split_top_level(p[1:-1]):
            part = part.strip()
            if not part:
                continue
            if part.startswith("..."):
                names.extend(binding_names(part))
                continue
            key_target = split_top_level(part, ":")
            target = key_target[1] if len(key_target) > 1 else key_target[0]
            names.extend(binding_names(target))
        return names

    if p.startswith("[") and p.endswith("]"):
        names = []
        for part in split_top_level(p[1:-1]):
            if part.strip():
                names.extend(binding_names(part))
        return names

    return [p] if IDENTIFIER_RE.match(p) else []


def find_keyword_on_line(code: str, masked: str, line: int, column: int, keyword: str) -> int:
    """Find the keyword on a line nearest to the column.

    Prefers the last occurrence at or before the column, then the first
    occurrence after it.

    Returns:
        Absolute offset of the keyword, or -1 if the line has none.
    """
    start = line_start_offset(code, line)
    end = masked.find("\n", start)
    end = len(masked) if end == -1 else end
    pattern = re.compile(rf"(?<![\w$.]){re.escape(keyword)}(?![\w$])")
    offsets = [start + m.start() for m in pattern.finditer(masked[start:end])]
    if not offsets:
        return -1
    target = start + column - 1
    before = [o for o in offsets if o <= target]
    return before[-1] if before else offsets[0]


def parse_declaration(code: str, masked: str, keyword_offset: int) -> Declaration:
    """Parse the declaration statement whose keyword starts at keyword_offset."""
    keyword = re.match(r"[a-z]+", masked[keyword_offset:])
    kw = keyword.group(0) if keyword else ""
    body_start = keyword_offset + len(kw)
    end = statement_end(masked, body_start)
    body = code[body_start:end].rstrip().rstrip(";")

    decl = Declaration(keyword=kw, start=keyword_offset, end=end)

    head = _FOR_HEAD_BEFORE.search(masked[:keyword_offset])
    if head is not None:
        decl.for_paren = masked.rfind("(", 0, keyword_offset)
        in_of = re.match(rf"\s*(.+?)\s+(of|in)\b", masked[body_start:end])
        if in_of is not None:
            decl.for_kind = "of" if in_of.group(2) == "of" else "in"
            target = code[body_start : body_start + in_of.end(1)]
            decl.declarators = [target.strip()]
            decl.names = binding_names(target)
            decl.initialized = True
            return decl
        decl.for_kind = "classic"

    for declarator in split_top_level(body):
        declarator = declarator.strip()
        if not declarator:
            continue
        decl.declarators.append(declarator)
        decl.names.extend(binding_names(declarator))
        if find_top_level_assignment(declarator) == -1:
            decl.initialized = False
    return decl


def enclosing_block(masked: str, offset: int) -> tuple[int, int]:
    """Return (start, end) of the innermost ``{ }`` block containing offset.

    start is just after the opening brace, end is the closing brace. The
    whole source is returned when offset is at top level.
    """
    depth = 0
    for i in range(offset - 1, -1, -1):
        ch = masked[i]
        if ch == "}":
            depth += 1
        elif ch == "{":
            if depth == 0:
                close = find_matching(masked, i)
                return (i + 1, close if close != -1 else len(masked))
            depth -= 1
    return (0, len(masked))


def block_head(masked: str, block_start: int) -> str:
    """Describe what introduces the block whose body starts at block_start.

    Returns "function", "loop", "control", "other", or "top" for the program.
    """
    if block_start == 0:
        return "top"
    prefix = masked[: block_start - 1].rstrip()
    if prefix.endswith("=>"):
        return "function"
    if prefix.endswith("do") and re.search(r"(?<![\w$])do$", prefix):
        return "loop"
    if prefix.endswith(")"):
        paren = find_matching_backward(prefix, len(prefix) - 1)
        if paren == -1:
            return "other"
        word = re.search(r"([\w$]+)\s*$", prefix[:paren])
        head = word.group(1) if word else ""
        if head in LOOP_HEADS:
            return "loop"
        if head in NON_FUNCTION_HEADS:
            return "control"
        return "function"
    return "other"


def function_scope(masked: str, offset: int) -> tuple[int, int]:
    """Return (start, end) of the innermost function body containing offset."""
    start, end = enclosing_block(masked, offset)
    while start != 0:
        if block_head(masked, start) == "function":
            return (start, end)
        start, end = enclosing_block(masked, start - 1)
    return (0, len(masked))


def declaration_scope(masked: str, decl: Declaration) -> tuple[int, int]:
    """Return the block scope a ``let``/``const`` version of decl would have."""
    if decl.in_for_header and decl.for_paren != -1:
        close = find_matching(masked, decl.for_paren)
        if close == -1:
            return enclosing_block(masked, decl.start)
        body = close + 1
        while body < len(masked) and masked[body] in " \t\n":
            body += 1
        if body < len(masked) and masked[body] == "{":
            body_end = find_matching(masked, body)
            return (decl.for_paren, body_end if body_end != -1 else len(masked))
        return (decl.for_paren, statement_end(masked, body))
    return enclosing_block(masked, decl.start)


def classify_occurrence(masked: str, name: str, offset: int) -> Occurrence:
    """Classify one occurrence of name as a reference or a reassignment."""
    after = masked[offset + len(name) :]
    before = masked[:offset]

    match = _REASSIGN_AFTER.match(after)
    if match is not None:
        operator = match.group(1)
        return Occurrence(
            name, offset, "reassignment", _REASSIGNMENT_TYPES.get(operator, "compound-assign")
        )
    match = _REASSIGN_BEFORE.search(before)
    if match is not None:
        return Occurrence(name, offset, "reassignment", _REASSIGNMENT_TYPES[match.group(1)])
    if _FOR_HEAD_BEFORE.search(before) and _FOR_IN_OF_AFTER.match(after):
        return Occurrence(name, offset, "reassignment", "loop-assign")
    return Occurrence(name, offset, "reference")


def find_occurrences(
    masked: str,
    name: str,
    start: int,
    end: int,
    declaration: Declaration | None = None,
) -> list[Occurrence]:
    """Collect and classify every occurrence of name within [start, end).

    Property accesses (``obj.name``) and object literal keys (``{ name: 1 }``)
    are skipped. Occurrences inside declaration's own declarator list are
    reported as declarations.
    """
    occurrences: list[Occurrence] = []
    pattern = word_pattern(name)
    for match in pattern.finditer(masked, start, end):
        offset = match.start()
        if is_property_access(masked, offset):
            continue
        if _is_object_key(masked, offset, name):
            continue
        if declaration is not None and declaration.start <= offset < declaration.end:
            if _is_declared_target(masked, offset, name, declaration):
                occurrences.append(Occurrence(name, offset, "declaration"))
                continue
        occurrences.append(classify_occurrence(masked, name, offset))
    return occurrences


def _is_object_key(masked: str, offset: int, name: str) -> bool:
    after = masked[offset + len(name) :]
    if not re.match(r"\s*:(?!:)", after):
        return False
    before = masked[:offset].rstrip()
    return before.endswith(("{", ","))


def _is_declared_target(masked: str, offset: int, name: str, declaration: Declaration) -> bool:
    """True if the occurrence inside a declaration is a binding, not an initializer reference."""
    if name not in declaration.names:
        return False
    segment = masked[declaration.start : offset]
    depth = 0
    in_initializer = False
    for i, ch in enumerate(segment):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "," and depth == 0:
            in_initializer = False
        elif ch == "=" and depth == 0:
            prev = segment[i - 1] if i > 0 else ""
            nxt = segment[i + 1] if i + 1 < len(segment) else ""
            if nxt not in ("=", ">") and prev not in ("=", "!", "<", ">"):
                in_initializer = True
    if in_initializer:
        return False
    if declaration.for_kind in ("of", "in"):
        return not re.search(r"\b(of|in)\b", segment[len(declaration.keyword) :])
    return True


@dataclass
class UsageReport:
    """Usage of the names of one declaration within a scope."""

    declaration: Declaration
    occurrences: dict[str, list[Occurrence]]

    def reassigned(self) -> list[str]:
        """Names with at least one reassignment, in declaration order."""
        return [
            name
            for name in self.declaration.names
            if any(o.kind == "reassignment" for o in self.occurrences.get(name, []))
        ]

    def references(self, name: str) -> list[Occurrence]:
        return [o for o in self.occurrences.get(name, []) if o.kind != "declaration"]


def analyze_usage(masked: str, declaration: Declaration, scope: tuple[int, int]) -> UsageReport:
    """Classify all occurrences of declaration's names inside scope."""
    start, end = scope
    occurrences = {
        name: find_occurrences(masked, name, start, end, declaration)
        for name in declaration.names
    }
    return UsageReport(declaration=declaration, occurrences=occurrences)


def locate_declaration(code: str, line: int, column: int, keyword: str) -> tuple[str, Declaration] | None:
    """Find and parse the keyword declaration on line nearest to column.

    Returns:
        (masked source, Declaration), or None when the line has no such keyword.
    """
    masked = mask_literals(code)
    offset = find_keyword_on_line(code, masked, line, column, keyword)
    if offset == -1:
        return None
    return masked, parse_declaration(code, masked, offset)
