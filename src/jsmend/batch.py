"""Batch processor: applies many fixes to one source buffer safely.

Diagnostics are applied bottom-to-top and right-to-left so that an edit
never shifts the position of a diagnostic that is still pending. Every
accepted fix is syntax-checked and snapshotted; a fix that breaks the
code is rolled back through the recovery chain and, by default, halts
the batch. Batch entry points never raise: every outcome, including
cancellation and unexpected errors, is reported through a BatchResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from jsmend.config import JsmendConfig
from jsmend.context import ContextAnalyzer
from jsmend.errors import (
    BatchCancelledError,
    FixerCannotHandleError,
    NoFixerAvailableError,
    RevertError,
    RollbackError,
    SnapshotNotFoundError,
    UnsafeContextError,
)
from jsmend.fixers.registry import FixerRegistry
from jsmend.models import (
    BatchProgress,
    BatchResult,
    Diagnostic,
    FixSummary,
    Phase,
    RecoveryResult,
    RelintInfo,
)
from jsmend.validators.code_validator import CodeValidator

RelintFunction = Callable[[str, str | None], Awaitable[Sequence[Diagnostic]]]
ProgressCallback = Callable[[BatchProgress], None]

START_SNAPSHOT = "batch-start"
TEXT_WINDOW = 10
MAX_WAVES = 100
HALTED_MESSAGE = "Skipped: batch halted after syntax failure"
CANCELLED_MESSAGE = "Batch processing was cancelled"

# Rules whose diagnostics on one line usually disappear together
RELATED_RULES: tuple[frozenset[str], ...] = (
    frozenset({"semi", "no-extra-semi"}),
    frozenset({"quotes", "no-mixed-quotes"}),
    frozenset({"indent", "no-mixed-spaces-and-tabs"}),
    frozenset({"no-trailing-spaces", "eol-last"}),
)

_ABORT_MARKERS = ("syntax", "validation")


def related_rules(a: str | None, b: str | None) -> bool:
    """Return True if two rule ids are the same rule or a known related pair."""
    if a is None or b is None:
        return False
    if a == b:
        return True
    return any(a in group and b in group for group in RELATED_RULES)


def prune_after_fix(diagnostics: Iterable[Diagnostic], applied: FixSummary) -> list[Diagnostic]:
    """Drop the fixed diagnostic and related diagnostics on the same line.

    Args:
        diagnostics: Diagnostics still pending.
        applied: Summary of the fix that was just applied.

    Returns:
        The diagnostics that are still worth attempting.
    """
    return [
        d
        for d in diagnostics
        if d.identity != applied.identity
        and not (d.line == applied.line and related_rules(d.rule_id, applied.rule_id))
    ]


def _window(code: str, line: int, column: int) -> str:
    """Text of line around column, used as the audit text of a fix."""
    lines = code.split("\n")
    if line < 1 or line > len(lines):
        return ""
    start = max(0, column - 1 - TEXT_WINDOW)
    return lines[line - 1][start : column - 1 + TEXT_WINDOW]


@dataclass
class _RunState:
    """Mutable bookkeeping of one batch run. Never leaves the processor."""

    start_code: str
    code: str
    total: int
    applied: list[FixSummary] = field(default_factory=list)
    failed: list[FixSummary] = field(default_factory=list)
    recoveries: list[RecoveryResult] = field(default_factory=list)
    attempted: set[tuple[str | None, int, int]] = field(default_factory=set)
    warnings: list[str] = field(default_factory=list)
    current: int = 0
    halted: bool = False
    error: str | None = None


class BatchProcessor:
    """Orders, applies, validates and, on failure, rolls back a list of fixes.

    One processor runs one batch at a time. Fixes are applied sequentially;
    the only suspension points are awaits on the re-lint capability.

    Attributes:
        registry: Registry resolving rule ids to fixers.
        config: Batch configuration.
        validator: Code validator owning snapshots and fix history.
        analyzer: Context analyzer used for the safe-edit-zone check.
        relint: Default re-lint capability for runs with re-linting.
    """

    def __init__(
        self,
        registry: FixerRegistry,
        config: JsmendConfig | None = None,
        validator: CodeValidator | None = None,
        analyzer: ContextAnalyzer | None = None,
        relint: RelintFunction | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or JsmendConfig()
        self.validator = validator or CodeValidator(history_limit=self.config.history_limit)
        self.analyzer = analyzer or ContextAnalyzer(cache_size=self.config.cache_size)
        self.relint = relint
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        self._running = False
        self._cancelled = False
        self._phase: Phase = "complete"
        self._state: _RunState | None = None
        self._runs = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def process_batch(
        self,
        code: str,
        diagnostics: Sequence[Diagnostic],
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Apply every fixable diagnostic to code in a single pass.

        Args:
            code: Source text.
            diagnostics: Diagnostics reported against code.
            on_progress: Optional callback receiving BatchProgress updates.

        Returns:
            BatchResult describing what was applied and what failed.
        """
        return await self._guarded_run(code, diagnostics, on_progress, relint=None, file_name=None)

    async def process_batch_with_relinting(
        self,
        code: str,
        diagnostics: Sequence[Diagnostic],
        on_progress: ProgressCallback | None = None,
        relint: RelintFunction | None = None,
        file_name: str | None = None,
    ) -> BatchResult:
        """Apply fixes in waves, re-linting the code between waves.

        Each wave holds up to ``relint_batch_size`` fixes. After a wave the
        re-lint capability supplies a fresh diagnostic list; diagnostics
        matching a fix that was already attempted are dropped. A re-lint that
        fails or times out is ignored and the stale list is used instead.

        Args:
            code: Source text.
            diagnostics: Diagnostics reported against code.
            on_progress: Optional callback receiving BatchProgress updates.
            relint: Re-lint capability. Defaults to the processor's own.
            file_name: File name hint for the re-lint capability.

        Returns:
            BatchResult with relint_info attached.
        """
        relint = relint or self.relint
        return await self._guarded_run(
            code,
            diagnostics,
            on_progress,
            relint=relint if relint is not None else _no_relint,
            file_name=file_name or self.config.file_name,
        )

    def prepare_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> list[Diagnostic]:
        """Keep fixable diagnostics and sort them by descending line, then column."""
        fixable = [d for d in diagnostics if self.registry.is_fixable(d.rule_id)]
        return sorted(fixable, key=lambda d: (d.line, d.column), reverse=True)

    def apply_fix_safely(
        self, code: str, diagnostic: Diagnostic
    ) -> tuple[str, FixSummary, str | None]:
        """Attempt one fix and validate the result.

        Args:
            code: Current code.
            diagnostic: Diagnostic to fix.

        Returns:
            Tuple of (code to continue with, summary, broken). The code is
            the patched code on success and the input otherwise; broken is
            the unparseable code a fixer produced, or None.
        """
        zone = self.analyzer.is_safe_edit_zone(code, diagnostic)
        if not zone.is_safe:
            return code, self._failure(diagnostic, str(UnsafeContextError(zone.reason))), None

        fixer = self.registry.get_fixer(diagnostic.rule_id)
        if fixer is None:
            return code, self._failure(diagnostic, str(NoFixerAvailableError(diagnostic.rule_id))), None

        if not fixer.can_fix(code, diagnostic):
            return code, self._failure(diagnostic, str(FixerCannotHandleError(diagnostic.rule_id))), None

        result = fixer.fix(code, diagnostic)
        if not result.success:
            return code, self._failure(diagnostic, result.message, result.warnings), None

        check = self.validator.validate_syntax(result.code)
        if not check.is_valid:
            message = f"Validation failed: {check.error}"
            return code, self._failure(diagnostic, message, check.warnings), result.code

        warnings = list(result.warnings)
        semantic = self.validator.validate_semantics(code, result.code)
        if not semantic.is_valid:
            warnings.extend(semantic.warnings)
            self.logger.debug(
                "Semantic heuristics flagged %s fix at line %d: %s",
                diagnostic.rule_id,
                diagnostic.line,
                semantic.error,
            )

        summary = FixSummary(
            rule_id=diagnostic.rule_id,
            line=diagnostic.line,
            column=diagnostic.column,
            success=True,
            message=result.message,
            original_text=_window(code, diagnostic.line, diagnostic.column),
            fixed_text=_window(result.code, diagnostic.line, diagnostic.column),
            warnings=warnings,
        )
        return result.code, summary, None

    def recover_from_error(self, code: str, applied_count: int) -> RecoveryResult:
        """Find a usable code state after a failed fix.

        Strategies are tried in order: continue with code if it parses, roll
        back to the most recent valid fix snapshot, revert only the most
        recent fix, and finally fall back to the batch-start snapshot.

        Args:
            code: Code at the time of the failure.
            applied_count: Number of fixes applied so far in the run.

        Returns:
            RecoveryResult; success is False only when no strategy applies.
        """
        return self._recover(code, applied_count)[0]

    def _recover(self, code: str, applied_count: int) -> tuple[RecoveryResult, int]:
        """Run the recovery chain; also return how many applied fixes survive."""
        if self.validator.validate_syntax(code).is_valid:
            recovery = RecoveryResult(True, code, "continue", "Current code is valid, continuing")
            return recovery, applied_count

        for n in range(applied_count, 0, -1):
            snapshot_id = f"fix-{n}"
            if not self.validator.has_snapshot(snapshot_id):
                continue
            candidate = self.validator.get_snapshot(snapshot_id)
            if self.validator.validate_syntax(candidate).is_valid:
                message = f"Rolled back to snapshot {snapshot_id}"
                return RecoveryResult(True, candidate, "rollback", message), n

        if self.validator.can_revert():
            try:
                reverted = self.validator.revert_last_fix(code)
            except RevertError as e:
                self.logger.debug("Partial rollback not possible: %s", e)
            else:
                message = "Reverted the most recent fix"
                return RecoveryResult(True, reverted, "partial_rollback", message), applied_count - 1

        try:
            original = self.validator.get_snapshot(START_SNAPSHOT)
        except SnapshotNotFoundError:
            original = None
        if original is not None and self.validator.validate_syntax(original).is_valid:
            message = "Restored the code from before the batch"
            return RecoveryResult(True, original, "full_rollback", message), 0

        message = "No valid code state could be recovered"
        return RecoveryResult(False, code, "none", message), applied_count

    def rollback_batch(self, result: BatchResult) -> str:
        """Return the code from before an unsuccessful batch.

        Raises:
            RollbackError: If the batch succeeded or no valid snapshot exists.
        """
        if result.success:
            raise RollbackError("Cannot roll back a successful batch")
        try:
            original = self.validator.get_snapshot(START_SNAPSHOT)
        except SnapshotNotFoundError:
            raise RollbackError("No batch-start snapshot available") from None
        if not self.validator.validate_syntax(original).is_valid:
            raise RollbackError("Batch-start snapshot is not valid code")
        return original

    def cancel(self) -> None:
        """Request cancellation of the running batch."""
        if self._running:
            self.logger.info("Cancellation requested")
            self._cancelled = True

    @property
    def is_running(self) -> bool:
        return self._running

    def current_status(self) -> dict[str, Any]:
        """Describe the batch currently running, if any."""
        state = self._state
        return {
            "is_running": self._running,
            "phase": self._phase,
            "cancelled": self._cancelled,
            "current": state.current if state else 0,
            "total": state.total if state else 0,
            "applied": len(state.applied) if state else 0,
            "failed": len(state.failed) if state else 0,
        }

    def stats(self) -> dict[str, Any]:
        """Return processor, registry, validator and analyzer statistics."""
        return {
            "runs": self._runs,
            "is_running": self._running,
            "registry": self.registry.stats(),
            "validator": self.validator.stats(),
            "analyzer": self.analyzer.cache_stats(),
        }

    def clear(self) -> None:
        """Drop snapshots, fix history and cached contexts."""
        if self._running:
            raise RuntimeError("Cannot clear while a batch is running")
        self.validator.clear()
        self.analyzer.clear_cache()
        self._state = None

    # -------------------------------------------------------------------------
    # Run orchestration
    # -------------------------------------------------------------------------

    async def _guarded_run(
        self,
        code: str,
        diagnostics: Sequence[Diagnostic],
        on_progress: ProgressCallback | None,
        relint: RelintFunction | None,
        file_name: str | None,
    ) -> BatchResult:
        if self._running:
            return BatchResult(
                final_code=code,
                applied_fixes=(),
                failed_fixes=(),
                total_errors=len(diagnostics),
                fixed_errors=0,
                success=False,
                error="Batch processing already in progress",
            )

        self._running = True
        self._cancelled = False
        self._runs += 1
        started = time.perf_counter()
        state = _RunState(start_code=code, code=code, total=len(diagnostics))
        self._state = state
        relint_info: RelintInfo | None = None
        try:
            self.validator.clear()
            self.analyzer.clear_cache()
            self.validator.create_snapshot(code, START_SNAPSHOT)
            self._set_phase("analyzing", state, on_progress, "Analyzing diagnostics")

            if relint is None:
                await self._run_pass(state, diagnostics, on_progress)
            else:
                relint_info = await self._run_waves(state, diagnostics, on_progress, relint, file_name)

            if not state.halted:
                self._set_phase("validating", state, on_progress, "Validating final code")
                self._validate_final(state)
        except BatchCancelledError as e:
            self.logger.info("Batch cancelled after %d applied fixes", len(state.applied))
            state.error = str(e)
        except Exception as e:
            self.logger.exception("Unexpected error during batch processing")
            state.error = f"Unexpected error: {e}"
            self._record_recovery(state, *self._recover(state.code, len(state.applied)))
        finally:
            self._running = False

        success = state.error is None
        self._set_phase("complete" if success else "error", state, on_progress, state.error or "Done")
        return BatchResult(
            final_code=state.code,
            applied_fixes=tuple(state.applied),
            failed_fixes=tuple(state.failed),
            total_errors=state.total,
            fixed_errors=len(state.applied),
            success=success,
            error=state.error,
            processing_time=(time.perf_counter() - started) * 1000,
            recoveries=tuple(state.recoveries),
            relint_info=relint_info,
            warnings=tuple(state.warnings),
        )

    async def _run_pass(
        self,
        state: _RunState,
        diagnostics: Iterable[Diagnostic],
        on_progress: ProgressCallback | None,
    ) -> None:
        """Attempt each diagnostic once, recording unfixable rules as failures."""
        diagnostics = list(diagnostics)
        for diagnostic in diagnostics:
            if not self.registry.is_fixable(diagnostic.rule_id):
                state.attempted.add(diagnostic.identity)
                state.failed.append(
                    self._failure(diagnostic, str(NoFixerAvailableError(diagnostic.rule_id)))
                )

        pending = self.prepare_diagnostics(diagnostics)
        for index, diagnostic in enumerate(pending):
            if self._cancelled:
                self._fail_remaining(state, pending[index:], CANCELLED_MESSAGE)
                raise BatchCancelledError()
            if state.halted:
                self._fail_remaining(state, pending[index:], HALTED_MESSAGE)
                return
            await self._apply_one(state, diagnostic, on_progress)
            # Yield so a cancel() from another task can land between fixes
            await asyncio.sleep(0)

    async def _run_waves(
        self,
        state: _RunState,
        diagnostics: Sequence[Diagnostic],
        on_progress: ProgressCallback | None,
        relint: RelintFunction,
        file_name: str | None,
    ) -> RelintInfo:
        size = self.config.relint_batch_size
        use_relint = self.config.relint_after_each_fix and relint is not _no_relint
        relint_count = 0
        current_errors: list[Diagnostic] = list(diagnostics)
        pending: list[Diagnostic] = list(diagnostics)
        seen = {d.identity for d in diagnostics}

        for _ in range(MAX_WAVES):
            if not pending or state.halted:
                break

            ordered = self.prepare_diagnostics(pending)
            unfixable = [d for d in pending if not self.registry.is_fixable(d.rule_id)]
            wave = ordered[:size]
            rest = ordered[size:]
            applied_before = len(state.applied)
            try:
                await self._run_pass(state, unfixable + wave, on_progress)
            except BatchCancelledError:
                self._fail_remaining(state, rest, CANCELLED_MESSAGE)
                raise
            if state.halted:
                self._fail_remaining(state, rest, HALTED_MESSAGE)
                break

            fresh = await self._relint(relint, state.code, file_name) if use_relint else None
            if self._cancelled:
                self._fail_remaining(state, rest, CANCELLED_MESSAGE)
                raise BatchCancelledError()
            if fresh is None:
                for summary in state.applied[applied_before:]:
                    rest = prune_after_fix(rest, summary)
                pending = rest
                continue

            relint_count += 1
            current_errors = fresh
            # Diagnostics already attempted are never retried
            pending = [d for d in fresh if d.identity not in state.attempted]
            discovered = [d for d in fresh if d.identity not in seen]
            seen.update(d.identity for d in discovered)
            state.total += len(discovered)
        else:
            self.logger.warning("Stopped re-linting after %d waves", MAX_WAVES)

        if relint_count == 0:
            applied = {s.identity for s in state.applied}
            current_errors = [d for d in current_errors if d.identity not in applied]
        return RelintInfo(
            relint_count=relint_count,
            final_error_count=len(current_errors),
            current_errors=tuple(current_errors),
        )

    async def _apply_one(
        self,
        state: _RunState,
        diagnostic: Diagnostic,
        on_progress: ProgressCallback | None,
    ) -> None:
        state.current += 1
        state.attempted.add(diagnostic.identity)
        self._set_phase(
            "fixing",
            state,
            on_progress,
            f"Fixing {diagnostic.rule_id} at line {diagnostic.line}",
            current_rule=diagnostic.rule_id or "",
        )

        try:
            code, summary, broken = self.apply_fix_safely(state.code, diagnostic)
        except Exception as e:
            self.logger.exception("Unexpected error fixing %s at line %d", diagnostic.rule_id, diagnostic.line)
            message = f"Unexpected error: {e}"
            state.failed.append(self._failure(diagnostic, message))
            self._record_recovery(state, *self._recover(state.code, len(state.applied)))
            if any(marker in str(e).lower() for marker in _ABORT_MARKERS):
                state.halted = True
                state.error = f"Batch aborted: {message}"
            return

        if summary.success:
            state.code = code
            state.applied.append(summary)
            self.validator.record_fix(
                diagnostic.rule_id,
                diagnostic.line,
                diagnostic.column,
                summary.original_text or "",
                summary.fixed_text or "",
            )
            self.validator.create_snapshot(code, f"fix-{len(state.applied)}")
            self.logger.debug("Applied %s fix at line %d", diagnostic.rule_id, diagnostic.line)
            return

        state.failed.append(summary)
        self.logger.debug("Could not fix %s at line %d: %s", diagnostic.rule_id, diagnostic.line, summary.message)
        if broken is None:
            return

        self._record_recovery(state, *self._recover(broken, len(state.applied)))
        if self.config.halt_on_syntax_failure:
            state.halted = True
            state.error = (
                f"Batch halted: {diagnostic.rule_id} fix at line {diagnostic.line} "
                "produced invalid code"
            )

    async def _relint(
        self, relint: RelintFunction, code: str, file_name: str | None
    ) -> list[Diagnostic] | None:
        """Run the re-lint capability; None means no new information."""
        try:
            fresh = await asyncio.wait_for(relint(code, file_name), timeout=self.config.relint_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Re-lint timed out after %.1fs", self.config.relint_timeout)
            return None
        except Exception as e:
            self.logger.warning("Re-lint failed: %s", e)
            return None
        return list(fresh)

    def _record_recovery(self, state: _RunState, recovery: RecoveryResult, kept: int) -> None:
        """Adopt the recovered code, moving any discarded fixes to the failures."""
        state.recoveries.append(recovery)
        self.logger.info("Recovery strategy %s: %s", recovery.strategy, recovery.message)
        if not recovery.success or recovery.code == state.code:
            return

        for summary in state.applied[kept:]:
            summary.success = False
            summary.message = f"Rolled back ({recovery.strategy}): {summary.message}"
            state.failed.append(summary)
        del state.applied[kept:]
        state.code = recovery.code

    def _validate_final(self, state: _RunState) -> None:
        """Check the final code once against the code from before the batch."""
        if not state.applied:
            return
        check = self.validator.validate_syntax(state.code)
        if check.is_valid:
            # Compared with the batch start, not with the previous fix
            semantic = self.validator.validate_semantics(state.start_code, state.code)
            for warning in semantic.warnings:
                self.logger.warning("Batch changed code structure: %s", warning)
            state.warnings.extend(semantic.warnings)
            return
        self._record_recovery(state, *self._recover(state.code, len(state.applied)))
        state.error = f"Final validation failed: {check.error}"

    def _fail_remaining(self, state: _RunState, diagnostics: Iterable[Diagnostic], message: str) -> None:
        for diagnostic in diagnostics:
            state.attempted.add(diagnostic.identity)
            state.failed.append(self._failure(diagnostic, message))

    def _failure(
        self, diagnostic: Diagnostic, message: str, warnings: list[str] | None = None
    ) -> FixSummary:
        return FixSummary(
            rule_id=diagnostic.rule_id,
            line=diagnostic.line,
            column=diagnostic.column,
            success=False,
            message=message,
            warnings=list(warnings or []),
        )

    def _set_phase(
        self,
        phase: Phase,
        state: _RunState,
        on_progress: ProgressCallback | None,
        message: str,
        current_rule: str = "",
    ) -> None:
        self._phase = phase
        if on_progress is None:
            return
        progress = BatchProgress(
            current=state.current,
            total=state.total,
            current_rule=current_rule,
            phase=phase,
            success_count=len(state.applied),
            failure_count=len(state.failed),
            message=message,
        )
        try:
            on_progress(progress)
        except Exception:
            # A failing progress sink must not change the outcome of the batch
            self.logger.exception("Progress callback failed during phase %s", phase)


async def _no_relint(code: str, file_name: str | None) -> Sequence[Diagnostic]:
    """Placeholder used when a run with waves has no re-lint capability."""
    return ()
