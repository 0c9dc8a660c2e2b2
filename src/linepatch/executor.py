"""Apply a normalized plan to a document in a fixed replace/insert/delete order."""

from __future__ import annotations

import logging
from typing import List, Sequence

from .invariants import InvariantViolation, enforce_fixed_snapshot_size, enforce_revision_increment
from .models import Document, IndexedPatch, PatchApplication, PatchFailure
from .normalizer import NormalizedPlan
from .observability import Observability, resolve_observability

LAYER = "executor"


def increment_revision(revision: int) -> int:
    return revision + 1


class _ExecutionState:
    """Mutable buffer and tallies for one execution."""

    __slots__ = ("buffer", "applied_count", "failures")

    def __init__(self, snapshot_lines: Sequence[str]) -> None:
        self.buffer: List[str] = list(snapshot_lines)
        self.applied_count = 0
        self.failures: List[PatchFailure] = []

    def fail(self, entry: IndexedPatch, error: str) -> None:
        self.failures.append(PatchFailure(index=entry.index, patch=entry.patch, error=error))


class PatchExecutor:
    """Apply an already-normalized plan to a copy of its snapshot.

    Replaces run first, then inserts, then deletes, each high line to low.
    Out-of-range patches are recorded as failures and skipped. Whatever
    applied is committed into the returned document, including when an
    unexpected error interrupts the batch.
    """

    def __init__(self, observability: Observability | None = None) -> None:
        self._obs = resolve_observability(observability)

    @classmethod
    def execute(
        cls,
        plan: NormalizedPlan,
        document: Document,
        *,
        observability: Observability | None = None,
    ) -> PatchApplication:
        return cls(observability).run(plan, document)

    def run(self, plan: NormalizedPlan, document: Document) -> PatchApplication:
        obs = self._obs
        started = obs.start_timer()
        obs.log(
            logging.INFO,
            LAYER,
            "Starting patch execution",
            snapshot_length=plan.snapshot_length,
            replace_count=len(plan.replace_desc),
            insert_count=len(plan.insert_desc),
            delete_count=len(plan.delete_desc),
        )

        revision_before = document.revision
        state = _ExecutionState(plan.snapshot_lines)
        try:
            enforce_fixed_snapshot_size(plan.snapshot_lines, plan.snapshot_length)
            enforce_fixed_snapshot_size(document.lines, plan.snapshot_length)

            self._apply_replacements(plan, state)
            self._apply_insertions(plan, state)
            self._apply_deletions(plan, state)
        except Exception as error:  # noqa: BLE001 - partial progress is reported, not raised
            return self._abort(plan, document, state, error)

        committed = self._commit(document, state)
        self._verify_revision(revision_before, committed, state)
        success = not state.failures

        duration = obs.end_timer(LAYER, started)
        obs.log(
            logging.INFO,
            LAYER,
            "Execution complete",
            applied_count=state.applied_count,
            failed_count=len(state.failures),
            before_revision=revision_before,
            after_revision=committed.revision,
            final_line_count=len(committed.lines),
            duration_ms=round(duration, 2) if duration is not None else None,
        )
        obs.increment("patches_applied", state.applied_count)
        obs.increment("patches_failed", len(state.failures))
        obs.increment("batches_completed", 1 if success else 0)

        return PatchApplication(
            success=success,
            applied_count=state.applied_count,
            document=committed,
            failed_patches=tuple(state.failures),
            warnings=plan.warnings,
            batch_id=plan.batch_id or obs.batch_id,
            previous_revision=revision_before,
        )

    def _apply_replacements(self, plan: NormalizedPlan, state: _ExecutionState) -> None:
        self._obs.log(
            logging.DEBUG,
            LAYER,
            "Applying replace patches",
            phase="replace",
            order=[entry.line_number for entry in plan.replace_desc],
        )
        for entry in plan.replace_desc:
            index = entry.line_number - 1
            # Bounds come from the snapshot; replace never changes the buffer length.
            if index < 0 or index >= plan.snapshot_length:
                message = f"Line {entry.line_number} out of snapshot bounds"
                self._obs.log(logging.ERROR, LAYER, "Patch failed", patch_index=entry.index, error=message)
                state.fail(entry, message)
                continue
            state.buffer[index] = entry.text or ""
            state.applied_count += 1

    def _apply_insertions(self, plan: NormalizedPlan, state: _ExecutionState) -> None:
        self._obs.log(
            logging.DEBUG,
            LAYER,
            "Applying insert patches",
            phase="insert",
            order=[entry.line_number for entry in plan.insert_desc],
        )
        for entry in plan.insert_desc:
            if entry.line_number < 1 or entry.line_number > len(state.buffer) + 1:
                message = f"Cannot insert at line {entry.line_number}"
                self._obs.log(logging.ERROR, LAYER, "Patch failed", patch_index=entry.index, error=message)
                state.fail(entry, message)
                continue
            state.buffer.insert(entry.line_number - 1, entry.text or "")
            state.applied_count += 1

    def _apply_deletions(self, plan: NormalizedPlan, state: _ExecutionState) -> None:
        self._obs.log(
            logging.DEBUG,
            LAYER,
            "Applying delete patches",
            phase="delete",
            order=[entry.line_number for entry in plan.delete_desc],
        )
        for entry in plan.delete_desc:
            index = entry.line_number - 1
            if index < 0 or index >= len(state.buffer):
                message = f"Cannot delete line {entry.line_number}"
                self._obs.log(logging.ERROR, LAYER, "Patch failed", patch_index=entry.index, error=message)
                state.fail(entry, message)
                continue
            del state.buffer[index]
            state.applied_count += 1

    @staticmethod
    def _commit(document: Document, state: _ExecutionState) -> Document:
        if state.applied_count == 0:
            return document
        return document.with_lines(state.buffer, revision=increment_revision(document.revision))

    def _verify_revision(self, before: int, committed: Document, state: _ExecutionState) -> None:
        """Post-condition check for invariant 6; logged, never raised."""
        if state.applied_count == 0:
            return
        try:
            enforce_revision_increment(before, committed.revision)
        except InvariantViolation as violation:
            self._obs.log(
                logging.ERROR,
                LAYER,
                str(violation),
                invariant=violation.invariant_number,
                context=violation.context,
            )
            self._obs.increment("invariant_violations")

    def _abort(
        self,
        plan: NormalizedPlan,
        document: Document,
        state: _ExecutionState,
        error: Exception,
    ) -> PatchApplication:
        obs = self._obs
        obs.log(
            logging.ERROR,
            LAYER,
            "Execution failed",
            applied_count=state.applied_count,
            failed_count=len(state.failures),
            error=str(error),
        )
        obs.increment("batches_failed")
        if isinstance(error, InvariantViolation):
            obs.increment("invariant_violations")
        committed = self._commit(document, state)
        return PatchApplication(
            success=False,
            applied_count=state.applied_count,
            document=committed,
            failed_patches=tuple(state.failures),
            error=str(error),
            warnings=plan.warnings,
            batch_id=plan.batch_id or obs.batch_id,
            previous_revision=document.revision,
        )


def execute(
    plan: NormalizedPlan,
    document: Document,
    *,
    observability: Observability | None = None,
) -> PatchApplication:
    """Functional alias for :meth:`PatchExecutor.execute`."""
    return PatchExecutor.execute(plan, document, observability=observability)


__all__ = ["PatchExecutor", "execute", "increment_revision"]
