"""Exception hierarchy for jsmend.

Fixers report rule-level failures through FixResult instead of raising;
these exceptions cover the conditions that cross component boundaries.
The batch processor converts every one of them into a BatchResult.
"""

from __future__ import annotations


class JsmendError(Exception):
    """Base class for all jsmend errors."""


class UnsafeContextError(JsmendError):
    """Raised when an edit position lies inside a string, comment, regex or template text."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Unsafe context: {reason}")


class NoFixerAvailableError(JsmendError):
    """Raised when no enabled fixer is registered for a rule."""

    def __init__(self, rule_id: str | None) -> None:
        self.rule_id = rule_id
        super().__init__(f"No fixer available for rule: {rule_id}")


class FixerCannotHandleError(JsmendError):
    """Raised when a fixer's rule-specific precondition does not hold."""

    def __init__(self, rule_id: str | None, reason: str | None = None) -> None:
        self.rule_id = rule_id
        self.reason = reason
        message = f"Fixer cannot handle this instance of {rule_id}"
        super().__init__(f"{message}: {reason}" if reason else message)


class ValidationFailure(JsmendError):
    """Base class for validation failures of patched code."""


class SyntaxValidationError(ValidationFailure):
    """Patched code no longer parses. Recoverable through rollback."""


class SemanticValidationError(ValidationFailure):
    """A structural heuristic tripped. Recorded as a warning."""


class BatchCancelledError(JsmendError):
    """Raised inside a batch run once cancellation was requested."""

    def __init__(self) -> None:
        super().__init__("Batch processing was cancelled")


class RollbackError(JsmendError):
    """Raised when a batch cannot be rolled back."""


class RevertError(JsmendError):
    """Raised when a recorded fix cannot be reverted."""


class SnapshotNotFoundError(JsmendError):
    """Raised when a named snapshot does not exist."""

    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class RelintError(JsmendError):
    """Raised by a re-lint capability that could not produce diagnostics."""


class DiagnosticsFormatError(JsmendError, ValueError):
    """Raised when diagnostics input does not match the expected shape."""
