"""Tests for the batch processor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import pytest

from jsmend.batch import (
    CANCELLED_MESSAGE,
    HALTED_MESSAGE,
    START_SNAPSHOT,
    BatchProcessor,
    prune_after_fix,
    related_rules,
)
from jsmend.config import JsmendConfig
from jsmend.errors import RollbackError
from jsmend.fixers import (
    BaseFixer,
    FixerRegistry,
    FixResult,
    NoTernaryFixer,
    SemiFixer,
    create_default_registry,
)
from jsmend.models import BatchProgress, Diagnostic, FixSummary


def _semi(line: int, column: int = 10) -> Diagnostic:
    return Diagnostic(rule_id="semi", message="Missing semicolon.", line=line, column=column)


class _BreakingFixer(BaseFixer):
    """Claims success while leaving an unclosed parenthesis behind."""

    rule_id = "breaker"
    description = "Break the code"

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return True

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        return code

    def fix(self, code: str, diagnostic: Diagnostic) -> FixResult:
        lines = code.split("\n")
        lines[diagnostic.line - 1] += " ("
        return FixResult(success=True, code="\n".join(lines), message="Applied breaker fix")


class _RaisingFixer(BaseFixer):
    """Raises from fix() with a configurable message."""

    rule_id = "raiser"
    description = "Raise"

    def __init__(self, error_message: str) -> None:
        super().__init__()
        self.error_message = error_message

    def _detect(self, code: str, diagnostic: Diagnostic) -> bool:
        return True

    def _apply(self, code: str, diagnostic: Diagnostic) -> str:
        return code

    def fix(self, code: str, diagnostic: Diagnostic) -> FixResult:
        raise RuntimeError(self.error_message)


def _processor(*extra: BaseFixer, config: JsmendConfig | None = None) -> BatchProcessor:
    registry = FixerRegistry()
    registry.register(SemiFixer())
    for fixer in extra:
        registry.register(fixer)
    return BatchProcessor(registry, config=config)


FIVE_LINES = "let a = 1\nlet b = 2\nlet c = 3\nlet d = 4\nlet e = 5"


def _five_line_diagnostics() -> list[Diagnostic]:
    return [
        _semi(1),
        _semi(2),
        Diagnostic(rule_id="breaker", message="break", line=3, column=1),
        _semi(4),
        _semi(5),
    ]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


class TestHelpers:
    """Tests for ordering and pruning helpers."""

    def test_related_rules(self) -> None:
        """Test same-rule and related-pair detection."""
        assert related_rules("semi", "semi")
        assert related_rules("semi", "no-extra-semi")
        assert related_rules("no-trailing-spaces", "eol-last")
        assert not related_rules("semi", "quotes")
        assert not related_rules(None, "semi")

    def test_prune_after_fix(self) -> None:
        """Test dropping the fixed diagnostic and related ones on its line."""
        diagnostics = [
            Diagnostic("semi", "m", 1, 5),
            Diagnostic("no-extra-semi", "m", 1, 8),
            Diagnostic("quotes", "m", 1, 3),
            Diagnostic("semi", "m", 2, 1),
        ]
        applied = FixSummary(rule_id="semi", line=1, column=5, success=True, message="ok")
        remaining = prune_after_fix(diagnostics, applied)
        assert [(d.rule_id, d.line) for d in remaining] == [("quotes", 1), ("semi", 2)]

    def test_prepare_diagnostics_orders_bottom_up(self) -> None:
        """Test descending (line, column) order and dropping unfixable rules."""
        processor = BatchProcessor(create_default_registry())
        diagnostics = [
            Diagnostic("semi", "m", 1, 10),
            Diagnostic("no-var", "m", 2, 1),
            Diagnostic("no-undef", "m", 3, 1),
            Diagnostic("semi", "m", 2, 10),
        ]
        ordered = processor.prepare_diagnostics(diagnostics)
        assert [d.identity for d in ordered] == [
            ("semi", 2, 10),
            ("no-var", 2, 1),
            ("semi", 1, 10),
        ]


# -----------------------------------------------------------------------------
# Single fixes
# -----------------------------------------------------------------------------


class TestApplyFixSafely:
    """Tests for apply_fix_safely."""

    def test_success_records_text_window(self) -> None:
        """Test that a successful fix reports the text around the position."""
        processor = _processor()
        code, summary, broken = processor.apply_fix_safely("let a = 1", _semi(1))
        assert code == "let a = 1;"
        assert broken is None
        assert summary.success is True
        assert summary.original_text == "let a = 1"
        assert summary.fixed_text == "let a = 1;"

    def test_unsafe_context(self) -> None:
        """Test that a position inside a string is never edited."""
        processor = _processor()
        code = 'const s = "a;b";'
        diagnostic = Diagnostic("semi", "Extra semicolon.", 1, 13)
        result_code, summary, broken = processor.apply_fix_safely(code, diagnostic)
        assert result_code == code
        assert broken is None
        assert summary.success is False
        assert summary.message.startswith("Unsafe context: Position is inside a string literal")

    def test_no_fixer(self) -> None:
        """Test the failure for a rule without a fixer."""
        processor = _processor()
        _, summary, _ = processor.apply_fix_safely("x;", Diagnostic("no-undef", "m", 1, 1))
        assert summary.message == "No fixer available for rule: no-undef"

    def test_fixer_cannot_handle(self) -> None:
        """Test the failure when the fixer does not recognise the instance."""
        processor = _processor()
        _, summary, _ = processor.apply_fix_safely("if (x) {\n}", _semi(1, 9))
        assert summary.message == "Fixer cannot handle this instance of semi"

    def test_broken_output_is_returned_separately(self) -> None:
        """Test that unparseable output is reported but not adopted."""
        processor = _processor(_BreakingFixer())
        code = "let a = 1;"
        result_code, summary, broken = processor.apply_fix_safely(
            code, Diagnostic("breaker", "m", 1, 1)
        )
        assert result_code == code
        assert broken == "let a = 1; ("
        assert summary.message.startswith("Validation failed:")

    def test_semantic_changes_become_warnings(self) -> None:
        """Test that tripped structural heuristics do not reject a fix."""
        processor = BatchProcessor(create_default_registry())
        diagnostic = Diagnostic("no-ternary", "Ternary operator used.", 1, 11)
        code, summary, _ = processor.apply_fix_safely("const x = a ? 1 : 2;", diagnostic)
        assert summary.success is True
        assert code.startswith("let x;\nif (a) {")
        assert summary.warnings == ["control construct count changed: 0 -> 2"]


# -----------------------------------------------------------------------------
# Batch runs
# -----------------------------------------------------------------------------


class TestProcessBatch:
    """Tests for process_batch."""

    def test_fixes_every_diagnostic(self) -> None:
        """Test fixing semicolons and declarations across two lines."""
        processor = BatchProcessor(create_default_registry())
        diagnostics = [
            _semi(1),
            _semi(2),
            Diagnostic("no-var", "Unexpected var, use let or const instead.", 1, 1),
            Diagnostic("no-var", "Unexpected var, use let or const instead.", 2, 1),
        ]
        result = asyncio.run(processor.process_batch("var x = 1\nvar y = 2", diagnostics))

        assert result.success is True
        assert result.error is None
        assert result.final_code == "const x = 1;\nconst y = 2;"
        assert result.total_errors == 4
        assert result.fixed_errors == 4
        assert result.failed_fixes == ()
        assert [s.identity for s in result.applied_fixes] == [
            ("semi", 2, 10),
            ("no-var", 2, 1),
            ("semi", 1, 10),
            ("no-var", 1, 1),
        ]
        assert result.processing_time >= 0

    def test_empty_batch(self) -> None:
        """Test that no diagnostics leave the code untouched."""
        result = asyncio.run(_processor().process_batch("let a = 1;", []))
        assert result.success is True
        assert result.final_code == "let a = 1;"
        assert result.total_errors == 0

    def test_unsafe_context_is_reported(self) -> None:
        """Test that a diagnostic inside a string fails without failing the batch."""
        code = 'const s = "a;;b";'
        diagnostic = Diagnostic("no-extra-semi", "Unnecessary semicolon.", 1, 13)
        result = asyncio.run(BatchProcessor(create_default_registry()).process_batch(code, [diagnostic]))
        assert result.success is True
        assert result.final_code == code
        assert result.fixed_errors == 0
        assert len(result.failed_fixes) == 1
        assert result.failed_fixes[0].message.startswith("Unsafe context:")

    def test_unfixable_rules_are_reported(self) -> None:
        """Test that rules without an enabled fixer are listed as failures."""
        registry = create_default_registry(JsmendConfig(disabled_rules=["quotes"]))
        diagnostics = [
            Diagnostic("no-undef", "'x' is not defined.", 1, 1),
            Diagnostic("quotes", "Strings must use singlequote.", 1, 5),
        ]
        result = asyncio.run(BatchProcessor(registry).process_batch('x = "a";', diagnostics))
        assert result.success is True
        assert [s.message for s in result.failed_fixes] == [
            "No fixer available for rule: no-undef",
            "No fixer available for rule: quotes",
        ]

    def test_broken_fix_halts_batch(self) -> None:
        """Test rollback and halt after a fix produces invalid code."""
        processor = _processor(_BreakingFixer())
        result = asyncio.run(processor.process_batch(FIVE_LINES, _five_line_diagnostics()))

        assert result.success is False
        assert result.error == "Batch halted: breaker fix at line 3 produced invalid code"
        assert result.final_code == "let a = 1\nlet b = 2\nlet c = 3\nlet d = 4;\nlet e = 5;"
        assert result.fixed_errors == 2
        assert [s.identity for s in result.failed_fixes] == [
            ("breaker", 3, 1),
            ("semi", 2, 10),
            ("semi", 1, 10),
        ]
        assert result.failed_fixes[0].message.startswith("Validation failed:")
        assert all(s.message == HALTED_MESSAGE for s in result.failed_fixes[1:])
        assert [r.strategy for r in result.recoveries] == ["rollback"]
        assert processor.validator.validate_syntax(result.final_code).is_valid

    def test_broken_fix_without_halting(self) -> None:
        """Test that the batch continues when halting is disabled."""
        config = JsmendConfig(halt_on_syntax_failure=False)
        processor = _processor(_BreakingFixer(), config=config)
        result = asyncio.run(processor.process_batch(FIVE_LINES, _five_line_diagnostics()))

        assert result.success is True
        assert result.fixed_errors == 4
        assert len(result.failed_fixes) == 1
        assert result.final_code == "let a = 1;\nlet b = 2;\nlet c = 3\nlet d = 4;\nlet e = 5;"

    def test_unexpected_fixer_error_is_contained(self) -> None:
        """Test that an exception from a fixer becomes a failure."""
        processor = _processor(_RaisingFixer("boom"))
        diagnostics = [_semi(1), Diagnostic("raiser", "m", 2, 1)]
        result = asyncio.run(processor.process_batch("let a = 1\nlet b = 2", diagnostics))
        assert result.success is True
        assert result.final_code == "let a = 1;\nlet b = 2"
        assert result.failed_fixes[0].message == "Unexpected error: boom"
        assert [r.strategy for r in result.recoveries] == ["continue"]

    def test_syntax_error_from_fixer_aborts(self) -> None:
        """Test that a syntax-related exception aborts the batch."""
        processor = _processor(_RaisingFixer("syntax tree exploded"))
        diagnostics = [_semi(1), Diagnostic("raiser", "m", 2, 1)]
        result = asyncio.run(processor.process_batch("let a = 1\nlet b = 2", diagnostics))
        assert result.success is False
        assert result.error == "Batch aborted: Unexpected error: syntax tree exploded"
        assert result.fixed_errors == 0
        assert [s.message for s in result.failed_fixes] == [
            "Unexpected error: syntax tree exploded",
            HALTED_MESSAGE,
        ]

    def test_progress_phases(self) -> None:
        """Test the sequence of progress notifications."""
        updates: list[BatchProgress] = []
        result = asyncio.run(_processor().process_batch("let a = 1", [_semi(1)], on_progress=updates.append))
        assert result.success is True
        assert [u.phase for u in updates] == ["analyzing", "fixing", "validating", "complete"]
        assert updates[1].current_rule == "semi"
        assert updates[1].current == 1
        assert updates[-1].success_count == 1
        assert updates[-1].total == 1

    def test_failing_progress_callback_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that an exception from on_progress never escapes or fails the batch."""

        def on_progress(progress: BatchProgress) -> None:
            raise RuntimeError("ui boom")

        registry = FixerRegistry()
        registry.register(SemiFixer())
        processor = BatchProcessor(registry, logger=logging.getLogger("jsmend_tests.progress"))
        with caplog.at_level(logging.ERROR, logger="jsmend_tests.progress"):
            result = asyncio.run(processor.process_batch("let a = 1", [_semi(1)], on_progress=on_progress))

        assert result.success is True
        assert result.error is None
        assert result.final_code == "let a = 1;"
        assert result.failed_fixes == ()
        assert "Progress callback failed during phase complete" in caplog.text

    def test_order_matches_highest_offset_first(self) -> None:
        """Test that a batch equals applying the rightmost fix first and recomputing the rest."""
        code = "const x = a ? 1 : 2"
        semi = _semi(1, 20)
        ternary = Diagnostic("no-ternary", "Ternary operator used.", 1, 11)

        result = asyncio.run(BatchProcessor(create_default_registry()).process_batch(code, [ternary, semi]))

        step = SemiFixer().fix(code, semi)
        assert step.success
        expected = NoTernaryFixer().fix(step.code, ternary)
        assert expected.success
        assert result.success is True
        assert result.fixed_errors == 2
        assert result.final_code == expected.code
        assert result.final_code == "let x;\nif (a) {\n  x = 1;\n} else {\n  x = 2;\n}"

        # Resolving the leftmost fix first leaves the other diagnostic stale
        stale = NoTernaryFixer().fix(code, ternary).code
        assert not SemiFixer().can_fix(stale, semi)

    def test_final_code_is_compared_with_batch_start(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that structural drift across the whole batch is logged and reported."""
        processor = BatchProcessor(
            create_default_registry(), logger=logging.getLogger("jsmend_tests.semantics")
        )
        diagnostics = [Diagnostic("no-ternary", "Ternary operator used.", 1, 11), _semi(1, 20)]
        with caplog.at_level(logging.WARNING, logger="jsmend_tests.semantics"):
            result = asyncio.run(processor.process_batch("const x = a ? 1 : 2", diagnostics))

        assert result.success is True
        assert result.warnings == ("control construct count changed: 0 -> 2",)
        assert result.to_dict()["warnings"] == ["control construct count changed: 0 -> 2"]
        assert "Batch changed code structure: control construct count changed" in caplog.text

    def test_structure_preserving_batch_has_no_warnings(self) -> None:
        """Test that a batch that keeps the code structure reports no warnings."""
        result = asyncio.run(_processor().process_batch("let a = 1\nlet b = 2", [_semi(1), _semi(2)]))
        assert result.fixed_errors == 2
        assert result.warnings == ()

    def test_status_during_run(self) -> None:
        """Test current_status and clear() while a batch runs."""
        processor = _processor()
        statuses: list[dict[str, object]] = []
        clear_errors: list[RuntimeError] = []

        def on_progress(progress: BatchProgress) -> None:
            if progress.phase == "fixing":
                statuses.append(processor.current_status())
                try:
                    processor.clear()
                except RuntimeError as e:
                    clear_errors.append(e)

        asyncio.run(processor.process_batch("let a = 1", [_semi(1)], on_progress=on_progress))
        assert statuses[0]["is_running"] is True
        assert statuses[0]["phase"] == "fixing"
        assert statuses[0]["total"] == 1
        assert len(clear_errors) == 1
        assert processor.is_running is False
        assert processor.current_status()["phase"] == "complete"

    def test_stats(self) -> None:
        """Test processor statistics after a run."""
        processor = _processor()
        asyncio.run(processor.process_batch("let a = 1", [_semi(1)]))
        stats = processor.stats()
        assert stats["runs"] == 1
        assert stats["is_running"] is False
        assert stats["registry"]["total"] == 1
        assert stats["validator"]["snapshot_count"] == 2


# -----------------------------------------------------------------------------
# Cancellation and concurrency
# -----------------------------------------------------------------------------


class TestCancellation:
    """Tests for cancel() and concurrent runs."""

    def test_cancel_between_fixes(self) -> None:
        """Test that cancellation keeps applied fixes and fails the rest."""
        processor = _processor()

        def on_progress(progress: BatchProgress) -> None:
            if progress.phase == "fixing" and progress.current == 1:
                processor.cancel()

        code = "let a = 1\nlet b = 2\nlet c = 3"
        result = asyncio.run(
            processor.process_batch(code, [_semi(1), _semi(2), _semi(3)], on_progress=on_progress)
        )
        assert result.success is False
        assert result.error == CANCELLED_MESSAGE
        assert result.final_code == "let a = 1\nlet b = 2\nlet c = 3;"
        assert result.fixed_errors == 1
        assert [s.message for s in result.failed_fixes] == [CANCELLED_MESSAGE, CANCELLED_MESSAGE]

    def test_cancel_when_idle_is_ignored(self) -> None:
        """Test that cancel() outside a run does not affect the next run."""
        processor = _processor()
        processor.cancel()
        result = asyncio.run(processor.process_batch("let a = 1", [_semi(1)]))
        assert result.success is True

    def test_concurrent_run_is_rejected(self) -> None:
        """Test that a second run on a busy processor fails immediately."""
        processor = _processor()
        code = "let a = 1\nlet b = 2"

        async def run_both() -> list:
            return await asyncio.gather(
                processor.process_batch(code, [_semi(1), _semi(2)]),
                processor.process_batch(code, [_semi(1)]),
            )

        first, second = asyncio.run(run_both())
        assert first.success is True
        assert second.success is False
        assert second.error == "Batch processing already in progress"
        assert second.final_code == code


# -----------------------------------------------------------------------------
# Recovery and rollback
# -----------------------------------------------------------------------------


class TestRecovery:
    """Tests for recover_from_error and rollback_batch."""

    def test_continue_with_valid_code(self) -> None:
        """Test that valid code needs no recovery."""
        recovery = _processor().recover_from_error("let a = 1;", 0)
        assert recovery.strategy == "continue"
        assert recovery.success is True

    def test_rollback_to_fix_snapshot(self) -> None:
        """Test restoring the newest valid fix snapshot."""
        processor = _processor()
        processor.validator.create_snapshot("let a = 1;", "fix-1")
        processor.validator.create_snapshot("let a = (", "fix-2")
        recovery = processor.recover_from_error("let a = ((", 2)
        assert recovery.strategy == "rollback"
        assert recovery.code == "let a = 1;"
        assert recovery.message == "Rolled back to snapshot fix-1"

    def test_partial_rollback(self) -> None:
        """Test reverting the most recent fix when no snapshot helps."""
        processor = _processor()
        processor.validator.record_fix("semi", 1, 1, "let a = 1;", "let a = 1; (")
        recovery = processor.recover_from_error("let a = 1; (", 1)
        assert recovery.strategy == "partial_rollback"
        assert recovery.code == "let a = 1;"

    def test_full_rollback(self) -> None:
        """Test falling back to the batch-start snapshot."""
        processor = _processor()
        processor.validator.create_snapshot("let a = 1", START_SNAPSHOT)
        recovery = processor.recover_from_error("let a = (", 0)
        assert recovery.strategy == "full_rollback"
        assert recovery.code == "let a = 1"

    def test_no_recovery(self) -> None:
        """Test the outcome when nothing valid is left."""
        recovery = _processor().recover_from_error("let a = (", 0)
        assert recovery.strategy == "none"
        assert recovery.success is False
        assert recovery.code == "let a = ("

    def test_rollback_batch(self) -> None:
        """Test restoring the original code of a failed batch."""
        processor = _processor(_BreakingFixer())
        result = asyncio.run(processor.process_batch(FIVE_LINES, _five_line_diagnostics()))
        assert processor.rollback_batch(result) == FIVE_LINES

    def test_rollback_successful_batch(self) -> None:
        """Test that successful batches cannot be rolled back."""
        processor = _processor()
        result = asyncio.run(processor.process_batch("let a = 1", [_semi(1)]))
        with pytest.raises(RollbackError, match="successful"):
            processor.rollback_batch(result)

    def test_rollback_without_snapshot(self) -> None:
        """Test that rollback fails once snapshots are cleared."""
        processor = _processor(_BreakingFixer())
        result = asyncio.run(processor.process_batch(FIVE_LINES, _five_line_diagnostics()))
        processor.clear()
        with pytest.raises(RollbackError, match="No batch-start snapshot"):
            processor.rollback_batch(result)


# -----------------------------------------------------------------------------
# Re-linting
# -----------------------------------------------------------------------------


class _ScriptedLinter:
    """Async re-lint capability returning queued responses."""

    def __init__(self, responses: list[list[Diagnostic]]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str | None]] = []

    async def __call__(self, code: str, file_name: str | None) -> Sequence[Diagnostic]:
        self.calls.append((code, file_name))
        return self.responses.pop(0) if self.responses else []


class TestRelinting:
    """Tests for process_batch_with_relinting."""

    def test_waves_pick_up_new_diagnostics(self) -> None:
        """Test that diagnostics reported by a re-lint are fixed in the next wave."""
        linter = _ScriptedLinter([[_semi(1)], []])
        processor = _processor(config=JsmendConfig(relint_batch_size=1))
        result = asyncio.run(
            processor.process_batch_with_relinting("let a = 1\nlet b = 2", [_semi(2)], relint=linter)
        )

        assert result.success is True
        assert result.final_code == "let a = 1;\nlet b = 2;"
        assert result.total_errors == 2
        assert result.fixed_errors == 2
        assert linter.calls[0] == ("let a = 1\nlet b = 2;", "temp.js")
        assert result.relint_info is not None
        assert result.relint_info.relint_count == 2
        assert result.relint_info.final_error_count == 0

    def test_attempted_diagnostics_are_not_retried(self) -> None:
        """Test that a diagnostic reported again after its fix is left alone."""
        linter = _ScriptedLinter([[_semi(1)]])
        processor = _processor()
        result = asyncio.run(
            processor.process_batch_with_relinting(
                "let a = 1", [_semi(1)], relint=linter, file_name="app.js"
            )
        )
        assert result.fixed_errors == 1
        assert len(linter.calls) == 1
        assert linter.calls[0][1] == "app.js"
        assert result.relint_info is not None
        assert result.relint_info.relint_count == 1
        assert result.relint_info.current_errors == (_semi(1),)

    def test_relint_timeout_uses_stale_list(self) -> None:
        """Test that a slow re-lint is ignored."""

        async def slow(code: str, file_name: str | None) -> Sequence[Diagnostic]:
            await asyncio.sleep(5)
            return []

        config = JsmendConfig(relint_batch_size=1, relint_timeout=0.01)
        processor = _processor(config=config)
        result = asyncio.run(
            processor.process_batch_with_relinting(
                "let a = 1\nlet b = 2", [_semi(1), _semi(2)], relint=slow
            )
        )
        assert result.success is True
        assert result.fixed_errors == 2
        assert result.relint_info is not None
        assert result.relint_info.relint_count == 0
        assert result.relint_info.final_error_count == 0

    def test_relint_failure_uses_stale_list(self) -> None:
        """Test that a failing re-lint is ignored."""

        async def failing(code: str, file_name: str | None) -> Sequence[Diagnostic]:
            raise RuntimeError("linter crashed")

        processor = _processor()
        diagnostics = [_semi(1), Diagnostic("no-undef", "m", 1, 1)]
        result = asyncio.run(
            processor.process_batch_with_relinting("let a = 1", diagnostics, relint=failing)
        )
        assert result.success is True
        assert result.final_code == "let a = 1;"
        assert result.relint_info is not None
        assert result.relint_info.relint_count == 0
        assert result.relint_info.current_errors == (Diagnostic("no-undef", "m", 1, 1),)

    def test_without_relint_capability(self) -> None:
        """Test that runs without a re-lint capability still complete."""
        processor = _processor(config=JsmendConfig(relint_batch_size=1))
        result = asyncio.run(
            processor.process_batch_with_relinting("let a = 1\nlet b = 2", [_semi(1), _semi(2)])
        )
        assert result.success is True
        assert result.final_code == "let a = 1;\nlet b = 2;"
        assert result.relint_info is not None
        assert result.relint_info.relint_count == 0
