"""Fixer for the ``no-unused-vars`` rule.

Three kinds of unused binding are removed: a variable declarator, the
last parameter of a function, and a whole function declaration. Anything
whose removal could drop a side effect, or that is still mentioned
elsewhere, is left alone.
"""

from __future__ import annotations

import re

from jsmend.context import absolute_offset, mask_literals
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.scope import (
    Declaration,
    binding_names,
    declaration_scope,
    find_occurrences,
    parse_declaration,
)
from jsmend.fixers.utils import (
    IDENTIFIER,
    IDENTIFIER_RE,
    find_matching,
    find_top_level_assignment,
    is_property_access,
    split_top_level,
    word_pattern,
)
from jsmend.models import Diagnostic

UNUSED_MESSAGES = (
    "is defined but never used",
    "is assigned a value but never used",
    "Unused variable",
    "no-unused-vars",
)

_QUOTED_NAME = re.compile(rf"'({IDENTIFIER})'")
_SIDE_EFFECTS = re.compile(r"\(|\bnew\b|\bawait\b|\byield\b|\bdelete\b|\+\+|--|(?<![=!<>])=(?![=>])")
_DECLARATION_KEYWORD = re.compile(r"(?<![\w$.])(var|let|const)\s+")
_FUNCTION_HEAD = re.compile(r"(?<![\w$.])(?:async\s+)?function\s*\*?\s*$")
_STATEMENT_START = ("", ";", "{", "}")


def unused_name(message: str) -> str | None:
    """Extract the binding name from an unused-variable message."""
    match = _QUOTED_NAME.search(message)
    return match.group(1) if match else None


class NoUnusedVarsFixer(BaseFixer):
    """Removes an unused variable, trailing parameter or function declaration."""

    rule_id = "no-unused-vars"
    complexity = "complex"
    description = "Remove unused variables, parameters and functions"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        if not any(text in diagnostic.message for text in UNUSED_MESSAGES):
            return False
        return self._name_offset(code, diagnostic) != -1

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        offset = self._name_offset(code, diagnostic)
        if offset == -1:
            raise self.refuse("unused binding not found at the reported position")
        masked = mask_literals(code)
        name = re.match(IDENTIFIER, masked[offset:]).group(0)

        before = masked[:offset]
        if _FUNCTION_HEAD.search(before):
            return self._remove_function(code, masked, name, offset)
        keyword = self._declaration_keyword(masked, offset)
        if keyword != -1:
            return self._remove_declarator(code, masked, name, keyword)
        return self._remove_parameter(code, masked, name, offset)

    def _name_offset(self, code: str, diagnostic: Diagnostic) -> int:
        """Return the absolute offset of the unused name on the diagnostic's line."""
        masked = mask_literals(code)
        target = absolute_offset(code, diagnostic.line, diagnostic.column)
        name = unused_name(diagnostic.message)
        if name is None:
            word = re.compile(IDENTIFIER).match(masked, target)
            return target if word else -1
        line_start = code.rfind("\n", 0, target) + 1
        line_end = masked.find("\n", target)
        line_end = len(masked) if line_end == -1 else line_end
        offsets = [
            m.start()
            for m in word_pattern(name).finditer(masked, line_start, line_end)
            if not is_property_access(masked, m.start())
        ]
        if not offsets:
            return -1
        return min(offsets, key=lambda o: abs(o - target))

    def _declaration_keyword(self, masked: str, offset: int) -> int:
        """Offset of the var/let/const whose declarator list contains offset, or -1."""
        line_start = masked.rfind("\n", 0, offset) + 1
        candidates = list(_DECLARATION_KEYWORD.finditer(masked, line_start, offset))
        if not candidates:
            return -1
        keyword = candidates[-1].start()
        decl = parse_declaration(masked, masked, keyword)
        name = re.match(IDENTIFIER, masked[offset:]).group(0)
        return keyword if keyword < offset < decl.end and name in decl.names else -1

    def _remove_declarator(self, code: str, masked: str, name: str, keyword: int) -> str:
        decl = parse_declaration(code, masked, keyword)
        if decl.in_for_header:
            raise self.refuse("declaration heads a for loop")

        target = None
        for declarator in decl.declarators:
            if binding_names(declarator) == [name]:
                eq = find_top_level_assignment(declarator)
                pattern = declarator[:eq] if eq != -1 else declarator
                if IDENTIFIER_RE.match(pattern.strip()):
                    target = declarator
                    break
        if target is None:
            raise self.refuse(f"'{name}' is bound by destructuring")

        eq = find_top_level_assignment(target)
        if eq != -1 and _SIDE_EFFECTS.search(mask_literals(target[eq + 1 :])):
            raise self.refuse("initializer may have side effects")
        self._ensure_unreferenced(masked, name, declaration_scope(masked, decl), decl)

        remaining = [d for d in decl.declarators if d is not target]
        statement = code[decl.start : decl.end]
        if remaining:
            terminator = ";" if statement.rstrip().endswith(";") else ""
            replacement = f"{decl.keyword} " + ", ".join(remaining) + terminator
            return code[: decl.start] + replacement + code[decl.end :]
        return _delete_span(code, decl.start, decl.end)

    def _remove_function(self, code: str, masked: str, name: str, offset: int) -> str:
        head = _FUNCTION_HEAD.search(masked[:offset])
        start = head.start()
        if masked[:start].rstrip()[-1:] not in _STATEMENT_START:
            raise self.refuse("function is part of an expression")
        paren = masked.find("(", offset)
        if paren == -1:
            raise self.refuse("function has no parameter list")
        params_close = find_matching(masked, paren)
        body_open = masked.find("{", params_close)
        if params_close == -1 or body_open == -1 or masked[params_close + 1 : body_open].strip():
            raise self.refuse("function body not found")
        body_close = find_matching(masked, body_open)
        if body_close == -1:
            raise self.refuse("function body is not closed")

        for occurrence in find_occurrences(masked, name, 0, len(masked)):
            inside = start <= occurrence.offset <= body_close
            if not inside:
                raise self.refuse(f"'{name}' is referenced outside its own body")
        return _delete_span(code, start, body_close + 1)

    def _remove_parameter(self, code: str, masked: str, name: str, offset: int) -> str:
        paren = -1
        depth = 0
        for i in range(offset - 1, -1, -1):
            if masked[i] in ")]}":
                depth += 1
            elif masked[i] in "([{":
                if depth == 0:
                    paren = i
                    break
                depth -= 1
        if paren == -1 or masked[paren] != "(":
            raise self.refuse(f"'{name}' is not a variable, parameter or function")
        close = find_matching(masked, paren)
        if close == -1:
            raise self.refuse("parameter list is not closed")
        if "\n" in masked[paren:close]:
            raise self.refuse("parameter list spans several lines")
        if re.search(r"(?<![\w$])catch\s*$", masked[:paren]):
            raise self.refuse("catch clause binding")

        after = masked[close + 1 :].lstrip()
        if after.startswith("=>"):
            body_start = close + 1 + (len(masked[close + 1 :]) - len(after)) + 2
            body_end = self._arrow_body_end(masked, body_start)
        elif after.startswith("{"):
            body_start = masked.index("{", close)
            body_end = find_matching(masked, body_start)
        else:
            raise self.refuse(f"'{name}' is not a function parameter")

        params = split_top_level(code[paren + 1 : close])
        stripped = [p.strip() for p in params if p.strip()]
        if not stripped or binding_names(stripped[-1]) != [name]:
            raise self.refuse("only the last parameter can be removed")
        if not IDENTIFIER_RE.match(stripped[-1].split("=")[0].strip()):
            raise self.refuse(f"'{name}' is bound by destructuring")
        if word_pattern(name).search(masked, paren + 1, close - len(params[-1])):
            raise self.refuse(f"'{name}' is used by another parameter")
        if any(
            not is_property_access(masked, m.start())
            for m in word_pattern(name).finditer(masked, body_start, max(body_start, body_end))
        ):
            raise self.refuse(f"'{name}' is used in the function body")
        return code[: paren + 1] + ", ".join(stripped[:-1]) + code[close:]

    def _arrow_body_end(self, masked: str, body_start: int) -> int:
        rest = masked[body_start:]
        stripped = rest.lstrip()
        brace = body_start + len(rest) - len(stripped)
        if stripped.startswith("{"):
            return find_matching(masked, brace)
        end = masked.find("\n", brace)
        return len(masked) if end == -1 else end

    def _ensure_unreferenced(
        self, masked: str, name: str, scope: tuple[int, int], decl: Declaration
    ) -> None:
        for occurrence in find_occurrences(masked, name, scope[0], scope[1], decl):
            if occurrence.kind != "declaration":
                raise self.refuse(f"'{name}' is still referenced")

    def _check_invariant(self, before: str, after: str) -> bool:
        return len(after) < len(before)


def _delete_span(code: str, start: int, end: int) -> str:
    """Remove code[start:end], taking the whole line(s) when nothing else is on them."""
    line_start = code.rfind("\n", 0, start) + 1
    line_end = code.find("\n", end)
    line_end = len(code) if line_end == -1 else line_end
    masked = mask_literals(code)
    if not masked[line_start:start].strip() and not masked[end:line_end].strip():
        if line_end < len(code):
            return code[:line_start] + code[line_end + 1 :]
        return code[: max(0, line_start - 1)]
    tail = end
    while tail < len(code) and code[tail] in " \t":
        tail += 1
    return code[:start] + code[tail:]
