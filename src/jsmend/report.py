"""Detailed reporting for batch results."""

from __future__ import annotations

from collections import Counter
from typing import Any, Literal

from jsmend.models import BatchResult, FixSummary

FailureCategory = Literal[
    "unsafe_context",
    "validation_error",
    "no_fixer",
    "fixer_limitation",
    "cancelled",
    "skipped",
    "other",
]

# Processing time (ms) above which smaller batches are recommended
SLOW_BATCH_MS = 5000


def categorize_failure(message: str) -> FailureCategory:
    """Map a failure message onto a reporting category.

    Args:
        message: FixSummary message of a failed fix.

    Returns:
        The failure category.
    """
    lowered = message.lower()
    if "cancelled" in lowered:
        return "cancelled"
    if lowered.startswith("skipped"):
        return "skipped"
    if "unsafe context" in lowered or "position is inside" in lowered:
        return "unsafe_context"
    if "validation failed" in lowered or "syntax" in lowered:
        return "validation_error"
    if "no fixer available" in lowered:
        return "no_fixer"
    if "cannot handle" in lowered:
        return "fixer_limitation"
    return "other"


def _count_by_rule(fixes: tuple[FixSummary, ...]) -> dict[str, int]:
    return dict(Counter(fix.rule_id or "(parser)" for fix in fixes))


def generate_recommendations(result: BatchResult) -> list[str]:
    """Build human-readable follow-up advice for a batch result."""
    recommendations: list[str] = []

    reasons = Counter(categorize_failure(fix.message) for fix in result.failed_fixes)
    if reasons["unsafe_context"]:
        recommendations.append(
            f"{reasons['unsafe_context']} fixes failed due to unsafe context "
            "(strings/comments). Consider manual review."
        )
    if reasons["no_fixer"]:
        recommendations.append(
            f"{reasons['no_fixer']} rules don't have fixers available. "
            "These require manual correction."
        )
    if reasons["validation_error"]:
        recommendations.append(
            f"{reasons['validation_error']} fixes failed validation. "
            "Code may have complex syntax issues."
        )
    if reasons["skipped"]:
        recommendations.append(
            f"{reasons['skipped']} fixes were skipped after a fix broke the code. "
            "Re-run the batch once the remaining issues are reviewed."
        )

    if result.applied_fixes:
        recommendations.append(
            f"Successfully applied {len(result.applied_fixes)} fixes. "
            "Consider running the linter again to check for new issues."
        )

    if result.processing_time > SLOW_BATCH_MS:
        recommendations.append(
            "Batch processing took longer than expected. "
            "Consider processing smaller batches for better performance."
        )
    return recommendations


def build_report(result: BatchResult) -> dict[str, Any]:
    """Build a JSON-compatible report of a batch result.

    Args:
        result: Result of a batch run.

    Returns:
        Dict with summary, applied_fixes, failed_fixes, code_metrics and
        recommendations sections.
    """
    failed_count = len(result.failed_fixes)
    success_rate = (
        round(result.fixed_errors / result.total_errors * 100, 1) if result.total_errors else 0.0
    )
    by_reason: dict[str, int] = dict(
        Counter(categorize_failure(fix.message) for fix in result.failed_fixes)
    )

    return {
        "summary": {
            "total_errors": result.total_errors,
            "fixed_errors": result.fixed_errors,
            "failed_errors": failed_count,
            "success_rate": success_rate,
            "processing_time": round(result.processing_time, 3),
            "overall_success": result.success,
        },
        "applied_fixes": {
            "count": len(result.applied_fixes),
            "by_rule": _count_by_rule(result.applied_fixes),
            "timeline": [
                {
                    "rule_id": fix.rule_id,
                    "line": fix.line,
                    "applied_at": fix.applied_at.isoformat(),
                    "message": fix.message,
                    "warnings": list(fix.warnings),
                }
                for fix in result.applied_fixes
            ],
        },
        "failed_fixes": {
            "count": failed_count,
            "by_rule": _count_by_rule(result.failed_fixes),
            "by_reason": by_reason,
            "details": [
                {
                    "rule_id": fix.rule_id,
                    "line": fix.line,
                    "column": fix.column,
                    "reason": fix.message,
                    "category": categorize_failure(fix.message),
                }
                for fix in result.failed_fixes
            ],
        },
        "code_metrics": {
            "length": len(result.final_code),
            "lines": result.final_code.count("\n") + 1,
            "has_changes": bool(result.applied_fixes),
        },
        "recommendations": generate_recommendations(result),
    }
