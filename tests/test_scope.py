"""Tests for declaration, scope and usage analysis."""

from __future__ import annotations

import pytest

from jsmend.context import mask_literals
from jsmend.fixers.scope import (
    analyze_usage,
    binding_names,
    block_head,
    classify_occurrence,
    declaration_scope,
    enclosing_block,
    find_keyword_on_line,
    find_occurrences,
    function_scope,
    locate_declaration,
    parse_declaration,
)


class TestBindingNames:
    """Tests for names bound by declarator targets."""

    @pytest.mark.parametrize(
        ("pattern", "names"),
        [
            ("x = 1", ["x"]),
            ("x", ["x"]),
            ("{ a, b: c, ...rest } = obj", ["a", "c", "rest"]),
            ("[x, , [y = 2]] = pairs", ["x", "y"]),
            ("{ a = 1 }", ["a"]),
            ("foo.bar", []),
        ],
    )
    def test_binding_names(self, pattern: str, names: list[str]) -> None:
        """Test plain and destructuring patterns."""
        assert binding_names(pattern) == names


class TestParseDeclaration:
    """Tests for declaration parsing."""

    def test_simple_declaration(self) -> None:
        """Test a single initialised declarator."""
        code = "let a = 1;\nfoo(a);"
        decl = parse_declaration(code, mask_literals(code), 0)
        assert decl.keyword == "let"
        assert decl.start == 0
        assert decl.end == 10
        assert decl.declarators == ["a = 1"]
        assert decl.names == ["a"]
        assert decl.initialized is True
        assert decl.in_for_header is False

    def test_uninitialised_declarator(self) -> None:
        """Test that one missing initializer marks the declaration uninitialised."""
        code = "let a, b = 2;"
        decl = parse_declaration(code, mask_literals(code), 0)
        assert decl.names == ["a", "b"]
        assert decl.initialized is False

    def test_for_of_header(self) -> None:
        """Test a declaration heading a for...of loop."""
        code = "for (const item of items) {}"
        decl = parse_declaration(code, mask_literals(code), 5)
        assert decl.for_kind == "of"
        assert decl.for_paren == 4
        assert decl.names == ["item"]

    def test_classic_for_header(self) -> None:
        """Test a declaration heading a counted loop."""
        code = "for (let i = 0; i < n; i++) {}"
        decl = parse_declaration(code, mask_literals(code), 5)
        assert decl.for_kind == "classic"
        assert decl.names == ["i"]
        assert decl.initialized is True

    def test_string_contents_are_not_declarators(self) -> None:
        """Test that commas inside strings do not split declarators."""
        code = "const s = 'a, b';"
        decl = parse_declaration(code, mask_literals(code), 0)
        assert decl.declarators == ["s = 'a, b'"]

    def test_locate_declaration(self) -> None:
        """Test finding the declaration nearest to a column."""
        code = "let a = 1; let b = 2;"
        located = locate_declaration(code, 1, 12, "let")
        assert located is not None
        assert located[1].names == ["b"]
        assert locate_declaration(code, 1, 1, "var") is None

    def test_find_keyword_on_line(self) -> None:
        """Test the keyword at or before the column is preferred."""
        code = "let a = 1; let b = 2;"
        masked = mask_literals(code)
        assert find_keyword_on_line(code, masked, 1, 12, "let") == 11
        assert find_keyword_on_line(code, masked, 1, 5, "let") == 0
        assert find_keyword_on_line(code, masked, 1, 1, "const") == -1


class TestScopes:
    """Tests for block and function scope detection."""

    def test_enclosing_block(self) -> None:
        """Test the innermost block around an offset."""
        masked = "a { b } c"
        assert enclosing_block(masked, 4) == (3, 6)
        assert enclosing_block(masked, 8) == (0, len(masked))

    @pytest.mark.parametrize(
        ("code", "head"),
        [
            ("function f() { x }", "function"),
            ("if (a) { x }", "control"),
            ("while (a) { x }", "loop"),
            ("const f = () => { x }", "function"),
            ("do { x } while (a);", "loop"),
            ("x; { x }", "other"),
        ],
    )
    def test_block_head(self, code: str, head: str) -> None:
        """Test classification of what introduces a block."""
        masked = mask_literals(code)
        block_start = masked.index("{") + 1
        assert block_head(masked, block_start) == head

    def test_function_scope_skips_control_blocks(self) -> None:
        """Test that if-blocks are not function scopes."""
        code = "function f() {\n  if (a) {\n    x();\n  }\n}"
        masked = mask_literals(code)
        start, end = function_scope(masked, code.index("x()"))
        assert start == code.index("{") + 1
        assert end == len(code) - 1

    def test_declaration_scope_of_for_header(self) -> None:
        """Test that a header declaration is scoped to the loop."""
        code = "for (let i = 0; i < 3; i += 1) {\n  f(i);\n}\ng();"
        masked = mask_literals(code)
        decl = parse_declaration(code, masked, 5)
        start, end = declaration_scope(masked, decl)
        assert start == 4
        assert code[end] == "}"
        assert end < code.index("g()")


class TestOccurrences:
    """Tests for occurrence classification."""

    @pytest.mark.parametrize(
        ("masked", "offset", "kind", "reassignment_type"),
        [
            ("x += 1", 0, "reassignment", "add-assign"),
            ("x = 1", 0, "reassignment", "assignment"),
            ("++x", 2, "reassignment", "increment"),
            ("x--", 0, "reassignment", "decrement"),
            ("x ||= y", 0, "reassignment", "compound-assign"),
            ("for (x of xs) {}", 5, "reassignment", "loop-assign"),
            ("x == 1", 0, "reference", None),
            ("f(x)", 2, "reference", None),
        ],
    )
    def test_classify_occurrence(
        self, masked: str, offset: int, kind: str, reassignment_type: str | None
    ) -> None:
        """Test reference versus reassignment detection."""
        occurrence = classify_occurrence(masked, "x", offset)
        assert occurrence.kind == kind
        assert occurrence.reassignment_type == reassignment_type

    def test_skips_properties_and_object_keys(self) -> None:
        """Test that obj.x and { x: 1 } are not occurrences of x."""
        masked = "x; obj.x; ({ x: 1 }); x = 2"
        kinds = [o.kind for o in find_occurrences(masked, "x", 0, len(masked))]
        assert kinds == ["reference", "reassignment"]

    def test_declaration_occurrences(self) -> None:
        """Test that the declared target is reported as a declaration."""
        code = "let x = y;\nx = 2;"
        masked = mask_literals(code)
        decl = parse_declaration(code, masked, 0)
        occurrences = find_occurrences(masked, "x", 0, len(masked), decl)
        assert [o.kind for o in occurrences] == ["declaration", "reassignment"]

    def test_analyze_usage(self) -> None:
        """Test the usage report for a declaration."""
        code = "let a = 1, b = 2;\nb += a;\nf(a);"
        masked = mask_literals(code)
        decl = parse_declaration(code, masked, 0)
        usage = analyze_usage(masked, decl, declaration_scope(masked, decl))
        assert usage.reassigned() == ["b"]
        assert len(usage.references("a")) == 2
