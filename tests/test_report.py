"""Tests for batch result reporting."""

from __future__ import annotations

import pytest

from jsmend.models import BatchResult, FixSummary
from jsmend.report import build_report, categorize_failure, generate_recommendations


def _summary(rule_id: str, line: int, success: bool, message: str) -> FixSummary:
    return FixSummary(rule_id=rule_id, line=line, column=1, success=success, message=message)


def _result(
    applied: list[FixSummary],
    failed: list[FixSummary],
    processing_time: float = 12.0,
    success: bool = True,
) -> BatchResult:
    return BatchResult(
        final_code="let a = 1;\nlet b = 2;\n",
        applied_fixes=tuple(applied),
        failed_fixes=tuple(failed),
        total_errors=len(applied) + len(failed),
        fixed_errors=len(applied),
        success=success,
        processing_time=processing_time,
    )


class TestCategorizeFailure:
    """Tests for failure categorisation."""

    @pytest.mark.parametrize(
        ("message", "category"),
        [
            ("Unsafe context: Position is inside a string literal (')", "unsafe_context"),
            ("Cannot fix semi: Position is inside a single comment", "unsafe_context"),
            ("Validation failed: Syntax error: unexpected token at line 1, column 5", "validation_error"),
            ("Fix validation failed: rule invariant not satisfied", "validation_error"),
            ("No fixer available for rule: camelcase", "no_fixer"),
            ("Fixer cannot handle this instance of prefer-const", "fixer_limitation"),
            ("Batch processing was cancelled", "cancelled"),
            ("Skipped: batch halted after syntax failure", "skipped"),
            ("Something odd happened", "other"),
        ],
    )
    def test_categories(self, message: str, category: str) -> None:
        """Test that each message maps to its category."""
        assert categorize_failure(message) == category


class TestBuildReport:
    """Tests for build_report."""

    def test_summary_and_groups(self) -> None:
        """Test counts, success rate and grouping."""
        result = _result(
            applied=[
                _summary("semi", 2, True, "Applied semi fix"),
                _summary("semi", 1, True, "Applied semi fix"),
                _summary("no-var", 1, True, "Applied no-var fix"),
            ],
            failed=[_summary("camelcase", 3, False, "No fixer available for rule: camelcase")],
        )

        report = build_report(result)

        assert report["summary"]["total_errors"] == 4
        assert report["summary"]["fixed_errors"] == 3
        assert report["summary"]["failed_errors"] == 1
        assert report["summary"]["success_rate"] == 75.0
        assert report["summary"]["overall_success"] is True
        assert report["applied_fixes"]["by_rule"] == {"semi": 2, "no-var": 1}
        assert [entry["line"] for entry in report["applied_fixes"]["timeline"]] == [2, 1, 1]
        assert report["failed_fixes"]["by_reason"] == {"no_fixer": 1}
        assert report["failed_fixes"]["details"][0]["category"] == "no_fixer"
        assert report["code_metrics"] == {"length": 22, "lines": 3, "has_changes": True}

    def test_success_rate_rounds_to_one_decimal(self) -> None:
        """Test that the success rate is rounded to one decimal place."""
        result = _result(
            applied=[_summary("semi", 1, True, "ok")],
            failed=[
                _summary("semi", 2, False, "Fixer cannot handle this instance of semi"),
                _summary("semi", 3, False, "Fixer cannot handle this instance of semi"),
            ],
        )
        assert build_report(result)["summary"]["success_rate"] == 33.3

    def test_empty_batch(self) -> None:
        """Test that an empty batch reports a zero success rate."""
        report = build_report(_result(applied=[], failed=[]))
        assert report["summary"]["success_rate"] == 0.0
        assert report["code_metrics"]["has_changes"] is False
        assert report["recommendations"] == []


class TestRecommendations:
    """Tests for generate_recommendations."""

    def test_failure_recommendations(self) -> None:
        """Test recommendations for each failure kind."""
        result = _result(
            applied=[_summary("semi", 1, True, "Applied semi fix")],
            failed=[
                _summary("quotes", 2, False, "Unsafe context: Position is inside a block comment"),
                _summary("camelcase", 3, False, "No fixer available for rule: camelcase"),
                _summary("curly", 4, False, "Validation failed: Syntax error"),
            ],
            success=False,
        )

        recommendations = generate_recommendations(result)

        assert any("1 fixes failed due to unsafe context" in r for r in recommendations)
        assert any("1 rules don't have fixers available" in r for r in recommendations)
        assert any("1 fixes failed validation" in r for r in recommendations)
        assert any("Successfully applied 1 fixes" in r for r in recommendations)

    def test_slow_batch(self) -> None:
        """Test the recommendation for slow batches."""
        result = _result(applied=[], failed=[], processing_time=6000.0)
        assert any("smaller batches" in r for r in generate_recommendations(result))
