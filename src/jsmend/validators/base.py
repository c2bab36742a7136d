"""Result models for code validation, fix history and snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class SyntaxCheck:
    """Result of a syntax validation.

    Attributes:
        is_valid: Whether the code parses.
        error: Summary of the first problem, when invalid.
        warnings: Individual problems found (bracket mismatches, parse errors).
        details: Extra machine-readable information (error position, issue list).
    """

    is_valid: bool
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class SemanticCheck:
    """Result of the structural comparison between two versions of the code.

    This is a heuristic. A failed check means a coarse signal changed
    (declaration counts, control constructs, module shape), not that the
    program's behavior changed.

    Attributes:
        is_valid: Whether all signals matched.
        error: Summary, when a signal changed.
        warnings: One message per changed signal.
    """

    is_valid: bool
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FixRecord:
    """One entry of the validator's fix history.

    Attributes:
        rule_id: Rule that was fixed.
        line: Line of the fix.
        column: Column of the fix.
        original_text: Text around the position before the fix.
        fixed_text: Text around the position after the fix.
        timestamp: When the fix was recorded.
    """

    rule_id: str | None
    line: int
    column: int
    original_text: str
    fixed_text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Snapshot:
    """A named, immutable copy of source text kept for rollback."""

    snapshot_id: str
    code: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SnapshotComparison:
    """Differences between some code and a stored snapshot."""

    identical: bool
    length_diff: int
    line_diff: int
    has_changes: bool
