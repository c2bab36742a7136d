"""Core data models shared by the analyzer, fixers, validator and batch processor.

Diagnostics mirror the message shape produced by common JavaScript linters
(ESLint's ``ruleId``/``line``/``column``/``severity``), using 1-based
line and column numbers throughout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from jsmend.errors import DiagnosticsFormatError

Severity = Literal["error", "warning"]
Phase = Literal["analyzing", "fixing", "validating", "complete", "error"]
RecoveryStrategy = Literal[
    "continue", "rollback", "partial_rollback", "full_rollback", "none"
]

# ESLint numeric severities
_SEVERITY_CODES: dict[int, Severity] = {1: "warning", 2: "error"}


@dataclass(frozen=True)
class Diagnostic:
    """One reported rule violation.

    Attributes:
        rule_id: Linter rule identifier (e.g., "semi"). None for parser errors.
        message: Human-readable message from the linter.
        line: 1-based line number.
        column: 1-based column number.
        end_line: Optional 1-based end line.
        end_column: Optional 1-based end column.
        severity: "error" or "warning".
    """

    rule_id: str | None
    message: str
    line: int
    column: int
    end_line: int | None = None
    end_column: int | None = None
    severity: Severity = "error"

    @property
    def identity(self) -> tuple[str | None, int, int]:
        """Key used to match a diagnostic against an applied fix."""
        return (self.rule_id, self.line, self.column)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Diagnostic:
        """Build a Diagnostic from a linter message dictionary.

        Accepts both camelCase (``ruleId``, ``endLine``) and snake_case keys.
        Unknown keys are ignored.

        Args:
            data: Linter message dictionary.

        Returns:
            The parsed Diagnostic.

        Raises:
            DiagnosticsFormatError: If line or column are missing or not integers.
        """
        if not isinstance(data, dict):
            raise DiagnosticsFormatError(f"Diagnostic must be an object, got {type(data).__name__}")

        rule_id = data.get("ruleId", data.get("rule_id"))
        line = data.get("line")
        column = data.get("column")
        if not isinstance(line, int) or not isinstance(column, int):
            raise DiagnosticsFormatError(
                f"Diagnostic requires integer 'line' and 'column': {data!r}"
            )

        raw_severity = data.get("severity", "error")
        if isinstance(raw_severity, int):
            severity = _SEVERITY_CODES.get(raw_severity, "error")
        elif raw_severity in ("error", "warning"):
            severity = raw_severity
        else:
            severity = "error"

        return cls(
            rule_id=rule_id if isinstance(rule_id, str) else None,
            message=str(data.get("message", "")),
            line=line,
            column=column,
            end_line=data.get("endLine", data.get("end_line")),
            end_column=data.get("endColumn", data.get("end_column")),
            severity=severity,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase linter message shape."""
        result: dict[str, Any] = {
            "ruleId": self.rule_id,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
        }
        if self.end_line is not None:
            result["endLine"] = self.end_line
        if self.end_column is not None:
            result["endColumn"] = self.end_column
        return result


@dataclass(frozen=True)
class Context:
    """Lexical state at one absolute offset of a source string.

    Attributes:
        in_string: Inside a single- or double-quoted string literal.
        in_comment: Inside a line or block comment.
        in_regex: Inside a regular expression literal.
        in_template: Inside a template literal (text or interpolation).
        in_template_expression: Inside a ``${ }`` interpolation of a template.
        string_char: Quote character of the enclosing string or template.
        comment_type: "single" for line comments, "multi" for block comments.
    """

    in_string: bool = False
    in_comment: bool = False
    in_regex: bool = False
    in_template: bool = False
    in_template_expression: bool = False
    string_char: str | None = None
    comment_type: Literal["single", "multi"] | None = None

    @property
    def is_code(self) -> bool:
        """True when the offset is plain code that may be edited."""
        if self.in_string or self.in_comment or self.in_regex:
            return False
        return not self.in_template or self.in_template_expression


@dataclass(frozen=True)
class SafeZone:
    """Outcome of a safe-edit-zone check.

    Attributes:
        is_safe: Whether the diagnostic position may be edited.
        reason: Human-readable explanation.
        context: Lexical context at the position, when it could be computed.
    """

    is_safe: bool
    reason: str
    context: Context | None = None


@dataclass
class FixSummary:
    """Audit record of one fix attempt, also the unit of rollback.

    Attributes:
        rule_id: Rule of the diagnostic.
        line: Diagnostic line.
        column: Diagnostic column.
        success: Whether the fix was applied.
        message: Description of the outcome.
        applied_at: When the attempt finished.
        original_text: Text around the position before the fix.
        fixed_text: Text around the position after the fix.
        warnings: Non-fatal notes, such as semantic heuristics that tripped.
    """

    rule_id: str | None
    line: int
    column: int
    success: bool
    message: str
    applied_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    original_text: str | None = None
    fixed_text: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def identity(self) -> tuple[str | None, int, int]:
        """Key used to match the summary against diagnostics."""
        return (self.rule_id, self.line, self.column)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "rule_id": self.rule_id,
            "line": self.line,
            "column": self.column,
            "success": self.success,
            "message": self.message,
            "applied_at": self.applied_at.isoformat(),
            "original_text": self.original_text,
            "fixed_text": self.fixed_text,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class BatchProgress:
    """Progress notification emitted during a batch run."""

    current: int
    total: int
    current_rule: str
    phase: Phase
    success_count: int
    failure_count: int
    message: str = ""


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of an attempt to recover from a failed fix.

    Attributes:
        success: Whether a usable code state was found.
        code: The code to continue from.
        strategy: Strategy that produced the code.
        message: Human-readable description.
    """

    success: bool
    code: str
    strategy: RecoveryStrategy
    message: str


@dataclass(frozen=True)
class RelintInfo:
    """Re-lint bookkeeping attached to a batch run with re-linting."""

    relint_count: int
    final_error_count: int
    current_errors: tuple[Diagnostic, ...] = ()


@dataclass(frozen=True)
class BatchResult:
    """Result of one batch run. Never mutated after it is returned.

    Attributes:
        final_code: Code after all accepted fixes.
        applied_fixes: Successful fix summaries, in application order.
        failed_fixes: Failed fix summaries, in attempt order.
        total_errors: Number of diagnostics handed to the batch.
        fixed_errors: Number of applied fixes.
        success: Whether the batch completed without a fatal condition.
        error: Message describing why the batch did not complete.
        processing_time: Wall time in milliseconds.
        recoveries: Recovery attempts made during the run.
        relint_info: Re-lint bookkeeping, for runs with re-linting.
        warnings: Semantic warnings comparing the final code with the code
            from before the batch.
    """

    final_code: str
    applied_fixes: tuple[FixSummary, ...]
    failed_fixes: tuple[FixSummary, ...]
    total_errors: int
    fixed_errors: int
    success: bool
    error: str | None = None
    processing_time: float = 0.0
    recoveries: tuple[RecoveryResult, ...] = ()
    relint_info: RelintInfo | None = None
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        result: dict[str, Any] = {
            "final_code": self.final_code,
            "applied_fixes": [f.to_dict() for f in self.applied_fixes],
            "failed_fixes": [f.to_dict() for f in self.failed_fixes],
            "total_errors": self.total_errors,
            "fixed_errors": self.fixed_errors,
            "success": self.success,
            "error": self.error,
            "processing_time": round(self.processing_time, 3),
            "recoveries": [
                {"strategy": r.strategy, "success": r.success, "message": r.message}
                for r in self.recoveries
            ],
            "warnings": list(self.warnings),
        }
        if self.relint_info is not None:
            result["relint_info"] = {
                "relint_count": self.relint_info.relint_count,
                "final_error_count": self.relint_info.final_error_count,
                "current_errors": [d.to_dict() for d in self.relint_info.current_errors],
            }
        return result
