"""Declaration keyword fixers: ``no-var`` and ``prefer-const``.

Both rewrite a single keyword, but only after scope analysis shows the new
keyword binds the same names over the same uses. Everything else (hoisted
references, redeclarations, loop-carried uninitialised state) is refused.
"""

from __future__ import annotations

import re

from jsmend.context import ContextAnalyzer
from jsmend.fixers.base import BaseFixer
from jsmend.fixers.scope import (
    Declaration,
    analyze_usage,
    block_head,
    declaration_scope,
    enclosing_block,
    find_occurrences,
    function_scope,
    locate_declaration,
    parse_declaration,
)
from jsmend.fixers.utils import find_matching_backward, word_pattern
from jsmend.models import Diagnostic
from jsmend.validators.code_validator import CodeValidator, count_keyword

REASSIGNED_REFUSAL = "Cannot convert to const: variables are reassigned"

_DECLARATION_KEYWORD = re.compile(r"(?<![\w$.])(var|let|const)(?![\w$])")


def _swap_keyword(code: str, decl: Declaration, keyword: str) -> str:
    return code[: decl.start] + keyword + code[decl.start + len(decl.keyword) :]


def _function_params(masked: str, body_start: int) -> str:
    """Return the parameter list text of the function whose body starts at body_start."""
    prefix = masked[: body_start - 1].rstrip()
    if prefix.endswith("=>"):
        prefix = prefix[:-2].rstrip()
        if not prefix.endswith(")"):
            match = re.search(r"([\w$]+)$", prefix)
            return match.group(1) if match else ""
    if not prefix.endswith(")"):
        return ""
    opener = find_matching_backward(prefix, len(prefix) - 1)
    return prefix[opener + 1 : -1] if opener != -1 else ""


class NoVarFixer(BaseFixer):
    """Replaces ``var`` with ``let`` or ``const``.

    The declaration is re-scoped to its enclosing block, so every use of
    each declared name must already lie inside that block and after the
    declaration. ``const`` is chosen when prefer_const is set, every name
    is initialised and none is ever reassigned.
    """

    rule_id = "no-var"
    complexity = "complex"
    description = "Replace var with let or const"

    def __init__(
        self,
        prefer_const: bool = True,
        analyzer: ContextAnalyzer | None = None,
        validator: CodeValidator | None = None,
    ) -> None:
        super().__init__(analyzer=analyzer, validator=validator)
        self.prefer_const = prefer_const

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        located = locate_declaration(code, diagnostic.line, diagnostic.column, "var")
        return located is not None and bool(located[1].names)

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        located = locate_declaration(code, diagnostic.line, diagnostic.column, "var")
        if located is None or not located[1].names:
            raise self.refuse("no var declaration at the reported position")
        masked, decl = located

        scope = declaration_scope(masked, decl)
        fn_start, fn_end = function_scope(masked, decl.start)
        for name in decl.names:
            for occurrence in find_occurrences(masked, name, fn_start, fn_end, decl):
                if occurrence.kind == "declaration":
                    continue
                if occurrence.offset < decl.start:
                    raise self.refuse(f"'{name}' is used before its declaration")
                if not scope[0] <= occurrence.offset < scope[1]:
                    raise self.refuse(f"'{name}' is used outside its block")

        self._check_redeclaration(masked, decl, (fn_start, fn_end))
        if not decl.initialized and self._inside_loop_body(masked, decl, fn_start):
            raise self.refuse("uninitialised var inside a loop body keeps its value between iterations")

        usage = analyze_usage(masked, decl, scope)
        use_const = (
            self.prefer_const
            and decl.initialized
            and decl.for_kind != "classic"
            and not usage.reassigned()
        )
        return _swap_keyword(code, decl, "const" if use_const else "let")

    def _check_redeclaration(self, masked: str, decl: Declaration, fn_scope: tuple[int, int]) -> None:
        start, end = fn_scope
        for match in _DECLARATION_KEYWORD.finditer(masked, start, end):
            if match.start() == decl.start:
                continue
            # Declarations in nested functions bind their own names
            if function_scope(masked, match.start())[0] != start:
                continue
            other = parse_declaration(masked, masked, match.start())
            shared = set(other.names) & set(decl.names)
            if shared:
                raise self.refuse(f"'{sorted(shared)[0]}' is declared more than once")

        block_start = enclosing_block(masked, decl.start)[0]
        if block_start == start and start != 0:
            params = _function_params(masked, start)
            for name in decl.names:
                if word_pattern(name).search(params):
                    raise self.refuse(f"'{name}' shadows a parameter")

    def _inside_loop_body(self, masked: str, decl: Declaration, fn_start: int) -> bool:
        start, _ = enclosing_block(masked, decl.start)
        while start > fn_start:
            if block_head(masked, start) == "loop":
                return True
            start, _ = enclosing_block(masked, start - 1)
        return False

    def _check_invariant(self, before: str, after: str) -> bool:
        if count_keyword(before, "var") - count_keyword(after, "var") != 1:
            return False
        block_before = count_keyword(before, "let") + count_keyword(before, "const")
        block_after = count_keyword(after, "let") + count_keyword(after, "const")
        return block_after - block_before == 1


class PreferConstFixer(BaseFixer):
    """Replaces ``let`` with ``const`` when no declared name is ever reassigned."""

    rule_id = "prefer-const"
    complexity = "complex"
    description = "Declare never-reassigned bindings with const"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        located = locate_declaration(code, diagnostic.line, diagnostic.column, "let")
        return located is not None and bool(located[1].names)

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        located = locate_declaration(code, diagnostic.line, diagnostic.column, "let")
        if located is None or not located[1].names:
            raise self.refuse("no let declaration at the reported position")
        masked, decl = located

        if decl.for_kind == "classic":
            raise self.refuse("loop counter declared in a for header")
        if not decl.initialized:
            raise self.refuse("not every declared name is initialised")
        usage = analyze_usage(masked, decl, declaration_scope(masked, decl))
        if usage.reassigned():
            raise self.refuse(REASSIGNED_REFUSAL)
        return _swap_keyword(code, decl, "const")

    def _check_invariant(self, before: str, after: str) -> bool:
        return (
            count_keyword(before, "let") - count_keyword(after, "let") == 1
            and count_keyword(after, "const") - count_keyword(before, "const") == 1
        )
