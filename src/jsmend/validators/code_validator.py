"""Syntax and structural validation of patched JavaScript.

Syntax is checked with a bracket-matching pre-pass (outside strings,
comments and regex literals) followed by a full parse with tree-sitter's
JavaScript grammar. The semantic check is a heuristic safety net that
compares coarse structural counts between two versions of the code; it
does not prove behavioral equivalence.

The validator also owns the fix history and the snapshot map used for
rollback during a batch run.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any

import tree_sitter_javascript as tsjavascript
from tree_sitter import Language, Node, Parser

from jsmend.context import KIND_CODE, mask_literals, scan_kinds
from jsmend.errors import RevertError, SnapshotNotFoundError
from jsmend.validators.base import (
    FixRecord,
    SemanticCheck,
    Snapshot,
    SnapshotComparison,
    SyntaxCheck,
)

DEFAULT_HISTORY_LIMIT = 100
LINE_DELTA_THRESHOLD = 10

_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _BRACKETS.items()}

# Signals compared by validate_semantics, grouped by what they describe
_DECLARATION_KEYWORDS = ("var", "let", "const")
_STRUCTURE_KEYWORDS = ("function", "class")
_CONTROL_KEYWORDS = ("if", "else", "for", "while", "do", "switch", "try")
_MODULE_KEYWORDS = ("import", "export")


@lru_cache(maxsize=1)
def _javascript_parser() -> Parser:
    """Build the tree-sitter parser for JavaScript once per process."""
    return Parser(Language(tsjavascript.language()))


def _first_error_node(node: Node) -> Node | None:
    """Return the first ERROR or MISSING node in document order."""
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error_node(child)
            if found is not None:
                return found
    return None


def check_brackets(code: str) -> list[str]:
    """Find unmatched or unclosed brackets in code, ignoring literals and comments.

    Args:
        code: Source text.

    Returns:
        List of problems; empty when every bracket is balanced.
    """
    issues: list[str] = []
    stack: list[tuple[str, int]] = []
    kinds = scan_kinds(code)

    for pos, (char, kind) in enumerate(zip(code, kinds)):
        if kind != KIND_CODE:
            continue
        if char in _BRACKETS:
            stack.append((char, pos))
        elif char in _CLOSERS:
            if not stack or stack[-1][0] != _CLOSERS[char]:
                issues.append(f"Unmatched bracket '{char}' at position {pos}")
                if stack and _CLOSERS[char] in (opener for opener, _ in stack):
                    # Resynchronise on the matching opener
                    while stack and stack[-1][0] != _CLOSERS[char]:
                        stack.pop()
                    stack.pop()
            else:
                stack.pop()

    for char, pos in stack:
        issues.append(f"Unclosed bracket '{char}' at position {pos}")
    return issues


def count_keyword(code: str, keyword: str) -> int:
    """Count whole-word occurrences of keyword outside literals and comments."""
    return len(re.findall(rf"(?<![\w$.]){re.escape(keyword)}(?![\w$])", mask_literals(code)))


class CodeValidator:
    """Validates patched code and keeps the history needed to undo fixes.

    Attributes:
        history_limit: Maximum number of fix records kept (oldest dropped first).
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize validator.

        Args:
            history_limit: Maximum number of fix records to keep.
            logger: Logger for diagnostics. Defaults to this module's logger.
        """
        self.history_limit = history_limit
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._history: list[FixRecord] = []
        self._snapshots: dict[str, Snapshot] = {}

    # -------------------------------------------------------------------------
    # Syntax and semantics
    # -------------------------------------------------------------------------

    def validate_syntax(self, code: str) -> SyntaxCheck:
        """Check that code is syntactically valid JavaScript.

        Runs the bracket pre-check first and only parses when it passes.

        Args:
            code: Source text.

        Returns:
            SyntaxCheck describing the outcome.
        """
        bracket_issues = check_brackets(code)
        if bracket_issues:
            return SyntaxCheck(
                is_valid=False,
                error=f"Syntax validation failed: {bracket_issues[0]}",
                warnings=bracket_issues,
                details={"type": "brackets", "issues": bracket_issues},
            )

        tree = _javascript_parser().parse(code.encode("utf-8"))
        root = tree.root_node
        if not root.has_error:
            return SyntaxCheck(is_valid=True, details={"type": "syntax", "passed": True})

        node = _first_error_node(root)
        details: dict[str, Any] = {"type": "syntax"}
        if node is None:
            message = "Syntax error: unable to parse code"
        else:
            row, column = node.start_point[0], node.start_point[1]
            kind = f"missing '{node.type}'" if node.is_missing else "unexpected token"
            message = f"Syntax error: {kind} at line {row + 1}, column {column + 1}"
            details.update({"line": row + 1, "column": column + 1})
        return SyntaxCheck(
            is_valid=False,
            error=message,
            warnings=["Code contains syntax errors that prevent execution"],
            details=details,
        )

    def validate_semantics(self, before: str, after: str) -> SemanticCheck:
        """Compare coarse structural signals between two versions of the code.

        The fixed version must parse. Beyond that, the check reports changes in
        the total number of declarations, functions and classes, control
        constructs, import/export statements, and line-count jumps larger than
        LINE_DELTA_THRESHOLD. Individual keyword swaps that keep the totals
        (``var`` to ``let``) are not reported.

        Args:
            before: Code before the fixes.
            after: Code after the fixes.

        Returns:
            SemanticCheck with one warning per changed signal.
        """
        syntax = self.validate_syntax(after)
        if not syntax.is_valid:
            return SemanticCheck(
                is_valid=False,
                error="Fixed code has syntax errors",
                warnings=syntax.warnings,
            )

        warnings: list[str] = []
        before_lines = before.count("\n") + 1
        after_lines = after.count("\n") + 1
        if abs(before_lines - after_lines) > LINE_DELTA_THRESHOLD:
            warnings.append(f"Significant line count change: {before_lines} -> {after_lines}")

        groups = {
            "declaration": _DECLARATION_KEYWORDS,
            "function/class": _STRUCTURE_KEYWORDS,
            "control construct": _CONTROL_KEYWORDS,
            "import/export": _MODULE_KEYWORDS,
        }
        for label, keywords in groups.items():
            before_count = sum(count_keyword(before, kw) for kw in keywords)
            after_count = sum(count_keyword(after, kw) for kw in keywords)
            if before_count != after_count:
                warnings.append(f"{label} count changed: {before_count} -> {after_count}")

        if warnings:
            return SemanticCheck(
                is_valid=False,
                error=f"Semantic validation failed: {'; '.join(warnings)}",
                warnings=warnings,
            )
        return SemanticCheck(is_valid=True)

    # -------------------------------------------------------------------------
    # Fix history
    # -------------------------------------------------------------------------

    def record_fix(
        self,
        rule_id: str | None,
        line: int,
        column: int,
        original_text: str,
        fixed_text: str,
    ) -> FixRecord:
        """Append a fix to the history, dropping the oldest beyond history_limit."""
        record = FixRecord(
            rule_id=rule_id,
            line=line,
            column=column,
            original_text=original_text,
            fixed_text=fixed_text,
        )
        self._history.append(record)
        if len(self._history) > self.history_limit:
            self._history.pop(0)
        return record

    def can_revert(self) -> bool:
        return bool(self._history)

    def revert_last_fix(self, code: str, fix: FixRecord | None = None) -> str:
        """Undo one fix by substituting its original text back on its line.

        This is best-effort: only the first occurrence of the fixed text on the
        recorded line is replaced.

        Args:
            code: Current code.
            fix: Record to revert. Defaults to the most recent history entry.

        Returns:
            The reverted code.

        Raises:
            RevertError: If there is nothing to revert, the text cannot be
                located, or the result would not parse.
        """
        if fix is None:
            if not self._history:
                raise RevertError("Cannot revert fix: no fix history")
            fix = self._history[-1]

        lines = code.split("\n")
        if fix.line < 1 or fix.line > len(lines):
            raise RevertError("Cannot revert fix: fix line number exceeds code length")
        target = lines[fix.line - 1]
        if not fix.fixed_text or fix.fixed_text not in target:
            raise RevertError("Cannot revert fix: fixed text not found on the recorded line")

        lines[fix.line - 1] = target.replace(fix.fixed_text, fix.original_text, 1)
        reverted = "\n".join(lines)

        validation = self.validate_syntax(reverted)
        if not validation.is_valid:
            raise RevertError(
                f"Cannot revert fix: reversion would create invalid code: {validation.error}"
            )
        if self._history and self._history[-1] == fix:
            self._history.pop()
        self.logger.debug("Reverted %s fix at line %d", fix.rule_id, fix.line)
        return reverted

    def export_history(self) -> list[FixRecord]:
        """Return a copy of the fix history, oldest first."""
        return list(self._history)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def create_snapshot(self, code: str, snapshot_id: str) -> Snapshot:
        """Store a named copy of code, replacing any snapshot with the same id."""
        snapshot = Snapshot(snapshot_id=snapshot_id, code=code)
        self._snapshots[snapshot_id] = snapshot
        return snapshot

    def has_snapshot(self, snapshot_id: str) -> bool:
        return snapshot_id in self._snapshots

    def get_snapshot(self, snapshot_id: str) -> str:
        """Return the code stored under snapshot_id.

        Raises:
            SnapshotNotFoundError: If no such snapshot exists.
        """
        try:
            return self._snapshots[snapshot_id].code
        except KeyError:
            raise SnapshotNotFoundError(snapshot_id) from None

    def snapshots(self) -> list[Snapshot]:
        """Return all snapshots in creation order."""
        return list(self._snapshots.values())

    def compare_with_snapshot(self, code: str, snapshot_id: str) -> SnapshotComparison:
        """Compare code with a stored snapshot.

        Raises:
            SnapshotNotFoundError: If no such snapshot exists.
        """
        snapshot = self.get_snapshot(snapshot_id)
        return SnapshotComparison(
            identical=code == snapshot,
            length_diff=len(code) - len(snapshot),
            line_diff=code.count("\n") - snapshot.count("\n"),
            has_changes=code != snapshot,
        )

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Return history and snapshot statistics."""
        return {
            "fix_history_size": len(self._history),
            "snapshot_count": len(self._snapshots),
            "last_fix_time": self._history[-1].timestamp.isoformat() if self._history else None,
        }

    def clear(self) -> None:
        """Drop all history and snapshots."""
        self._history.clear()
        self._snapshots.clear()
