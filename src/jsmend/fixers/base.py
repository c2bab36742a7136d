"""Base classes for rule fixers.

Every fixer repairs diagnostics of exactly one lint rule. The public
contract is can_fix / fix / validate; subclasses implement the
rule-specific parts through _detect and _apply.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from jsmend.context import ContextAnalyzer
from jsmend.errors import FixerCannotHandleError
from jsmend.models import Diagnostic
from jsmend.validators.code_validator import CodeValidator

logger = logging.getLogger(__name__)

Complexity = Literal["simple", "complex"]


@dataclass
class FixResult:
    """Result of one fixer invocation.

    Attributes:
        success: Whether the fix was applied.
        code: Patched code on success, the unchanged input on failure.
        message: Human-readable description of what happened.
        warnings: Non-fatal notes about the fix.
    """

    success: bool
    code: str
    message: str
    warnings: list[str] = field(default_factory=list)


class BaseFixer(ABC):
    """Abstract base class for all rule fixers.

    Fixers hold no state between calls beyond the configuration passed at
    construction, so one instance can serve any number of diagnostics.

    Attributes:
        analyzer: Context analyzer used to refuse edits inside literals.
        validator: Code validator used to check patched code.
    """

    # The rule this fixer handles (must be set by subclasses)
    rule_id: str = ""
    complexity: Complexity = "simple"
    description: str = ""

    def __init__(
        self,
        analyzer: ContextAnalyzer | None = None,
        validator: CodeValidator | None = None,
    ) -> None:
        """Initialize fixer.

        Args:
            analyzer: Shared context analyzer. A private one is created if omitted.
            validator: Shared code validator. A private one is created if omitted.
        """
        self.analyzer = analyzer or ContextAnalyzer()
        self.validator = validator or CodeValidator()

    def can_fix(self, code: str, diagnostic: Diagnostic) -> bool:
        """Check whether this fixer can repair the diagnostic in code.

        Checks, in order: the rule id, the position bounds, the safe-edit-zone
        verdict of the context analyzer, and finally the rule-specific
        detection. Has no side effects.

        Args:
            code: Source text.
            diagnostic: Diagnostic to check.

        Returns:
            True if fix() would attempt a repair.
        """
        if diagnostic.rule_id != self.rule_id:
            return False
        if not is_valid_position(code, diagnostic.line, diagnostic.column):
            return False
        if not self.analyzer.is_safe_edit_zone(code, diagnostic).is_safe:
            return False
        try:
            return self._detect(code, diagnostic)
        except (ValueError, IndexError):
            return False

    def fix(self, code: str, diagnostic: Diagnostic) -> FixResult:
        """Repair the diagnostic.

        Either returns the fully patched code or the original code; never a
        partial edit. Patched code is only returned once validate() accepts it.

        Args:
            code: Source text.
            diagnostic: Diagnostic to repair.

        Returns:
            FixResult with the outcome.
        """
        if not self.can_fix(code, diagnostic):
            zone = self.analyzer.is_safe_edit_zone(code, diagnostic)
            if not zone.is_safe:
                return self.failure(code, f"Cannot fix {self.rule_id}: {zone.reason}")
            return self.failure(
                code, f"Fixer cannot handle this instance of {diagnostic.rule_id}"
            )

        try:
            fixed = self._apply(code, diagnostic)
        except FixerCannotHandleError as e:
            return self.failure(code, str(e))
        except (ValueError, IndexError, KeyError) as e:
            return self.handle_error(e, code, "fix")

        if not self.validate(code, fixed):
            check = self.validator.validate_syntax(fixed)
            reason = check.error if not check.is_valid else "rule invariant not satisfied"
            return self.failure(code, f"Fix validation failed: {reason}")
        return self.success(fixed)

    def validate(self, before: str, after: str) -> bool:
        """Check a patched result.

        The result must differ from the input, must parse, and must satisfy
        the rule's own structural invariant.
        """
        if before == after:
            return False
        if not self.validator.validate_syntax(after).is_valid:
            return False
        return self._check_invariant(before, after)

    @abstractmethod
    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        """Return True if the rule violation is present at the diagnostic position."""

    @abstractmethod
    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        """Return the patched code.

        Raises:
            FixerCannotHandleError: If the instance cannot be repaired safely.
        """

    def _check_invariant(self, before: str, after: str) -> bool:
        return True

    def refuse(self, reason: str) -> FixerCannotHandleError:
        """Build the exception used to decline a particular instance."""
        return FixerCannotHandleError(self.rule_id, reason)

    def success(self, code: str, message: str | None = None, warnings: list[str] | None = None) -> FixResult:
        return FixResult(
            success=True,
            code=code,
            message=message or f"Applied {self.rule_id} fix",
            warnings=warnings or [],
        )

    def failure(self, code: str, message: str | None = None, warnings: list[str] | None = None) -> FixResult:
        return FixResult(
            success=False,
            code=code,
            message=message or f"Failed to apply {self.rule_id} fix",
            warnings=warnings or [],
        )

    def handle_error(self, error: Exception, code: str, context: str = "") -> FixResult:
        """Convert an unexpected error into a failure result preserving code."""
        where = f" in {context}" if context else ""
        message = f"{self.rule_id} fixer error{where}: {error}"
        logger.warning(message)
        return self.failure(
            code,
            message,
            ["Fix operation failed due to unexpected error", "Original code was preserved"],
        )


def is_valid_position(code: str, line: int, column: int) -> bool:
    """Check that a 1-based line/column lies inside code (column may be line end + 1)."""
    lines = code.split("\n")
    if line < 1 or line > len(lines):
        return False
    return 1 <= column <= len(lines[line - 1]) + 1
