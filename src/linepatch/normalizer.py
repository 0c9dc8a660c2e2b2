"""Turn a raw batch into a validated, execution-ready plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Sequence, Tuple

from .config import EngineConfig
from .invariants import (
    InvariantViolation,
    PatchEngineError,
    enforce_desc_order,
    enforce_immutable_snapshot,
    enforce_independent_patches,
    enforce_insert_bounds,
    enforce_snapshot_ssot,
)
from .models import AnyPatch, IndexedPatch, NormalizationWarning
from .observability import Observability, resolve_observability
from .semantics import PatchSemantics

LAYER = "normalizer"


class NormalizationError(PatchEngineError):
    """Raised when normalization fails for a reason other than an invariant."""


@dataclass(frozen=True, slots=True)
class NormalizedPlan:
    """Execution-ready batch: frozen snapshot plus per-kind DESC sequences."""

    snapshot_lines: Tuple[str, ...]
    snapshot_length: int
    semantics: PatchSemantics
    replace_desc: Tuple[IndexedPatch, ...]
    insert_desc: Tuple[IndexedPatch, ...]
    delete_desc: Tuple[IndexedPatch, ...]
    warnings: Tuple[NormalizationWarning, ...] = ()
    is_ready: bool = True
    batch_id: str | None = None

    @property
    def ordered(self) -> Tuple[IndexedPatch, ...]:
        """All patches in execution order (replace, insert, delete)."""
        return self.replace_desc + self.insert_desc + self.delete_desc

    def execution_order(self) -> dict[str, List[int]]:
        return {
            "replace": [entry.line_number for entry in self.replace_desc],
            "insert": [entry.line_number for entry in self.insert_desc],
            "delete": [entry.line_number for entry in self.delete_desc],
        }


def sort_desc(patches: Iterable[IndexedPatch]) -> Tuple[IndexedPatch, ...]:
    """Return ``patches`` ordered by line number, highest first."""
    return tuple(sorted(patches, key=lambda entry: entry.line_number, reverse=True))


def organize(
    semantics: PatchSemantics,
    *,
    warnings: Sequence[NormalizationWarning] = (),
    batch_id: str | None = None,
) -> NormalizedPlan:
    """Sort each kind DESC and wrap the result in a plan without enforcing invariants."""
    return NormalizedPlan(
        snapshot_lines=semantics.snapshot_lines,
        snapshot_length=semantics.snapshot_length,
        semantics=semantics,
        replace_desc=sort_desc(semantics.replaces),
        insert_desc=sort_desc(semantics.inserts),
        delete_desc=sort_desc(semantics.deletes),
        warnings=tuple(warnings),
        is_ready=True,
        batch_id=batch_id,
    )


def generate_warnings(
    semantics: PatchSemantics,
    *,
    large_batch_threshold: int,
) -> Tuple[NormalizationWarning, ...]:
    warnings: List[NormalizationWarning] = []
    summary = semantics.summary

    if summary.total_patches > large_batch_threshold:
        warnings.append(
            NormalizationWarning(
                code="large_batch",
                level="warn",
                message=f"Large batch: {summary.total_patches} patches (recommended <= {large_batch_threshold})",
            )
        )

    if summary.replace_count and (summary.insert_count or summary.delete_count):
        warnings.append(
            NormalizationWarning(
                code="mixed_kinds",
                level="warn",
                message=(
                    "Mixing replace with insert/delete: line numbers stay snapshot-relative "
                    "while inserts and deletes change the buffer length"
                ),
            )
        )

    kinds = semantics.kinds_present()
    if len(kinds) == 1:
        warnings.append(
            NormalizationWarning(
                code="homogeneous",
                level="info",
                message=f"Homogeneous batch: all {summary.total_patches} patches are {kinds[0].value}",
            )
        )
    return tuple(warnings)


def normalize(
    snapshot_lines: Sequence[str],
    patches: Sequence[AnyPatch],
    *,
    observability: Observability | None = None,
    config: EngineConfig | None = None,
) -> NormalizedPlan:
    """Validate ``patches`` against ``snapshot_lines`` and organize them for execution.

    Invariants 1, 3, 4 and 5 are enforced in that order, then invariant 2 over
    the sorted result. The first violation propagates and no plan is produced.
    """
    obs = resolve_observability(observability)
    settings = config or EngineConfig()
    started = obs.start_timer()
    obs.log(logging.INFO, LAYER, "Normalizing patches", patch_count=len(patches))

    frozen = tuple(snapshot_lines)
    snapshot_length = len(frozen)
    semantics = PatchSemantics(frozen, patches, obs)

    try:
        obs.log(logging.DEBUG, LAYER, "Validating snapshot SSOT", step="snapshot_ssot")
        enforce_snapshot_ssot(semantics.indexed, snapshot_length)
        obs.log(logging.DEBUG, LAYER, "Validating immutability", step="immutable_snapshot")
        enforce_immutable_snapshot(frozen)
        obs.log(logging.DEBUG, LAYER, "Validating insert bounds", step="insert_bounds")
        enforce_insert_bounds(semantics.inserts, snapshot_length)
        obs.log(logging.DEBUG, LAYER, "Checking patch independence", step="independent_patches")
        enforce_independent_patches(semantics.indexed)
    except InvariantViolation as violation:
        _record_violation(obs, violation)
        raise
    except (TypeError, AttributeError, ValueError) as error:
        raise NormalizationError(f"Normalization failed: {error}") from error

    plan = organize(semantics, batch_id=obs.batch_id)
    obs.log(logging.DEBUG, LAYER, "Patches organized and sorted DESC", **plan.execution_order())

    try:
        enforce_desc_order(plan.ordered)
    except InvariantViolation as violation:
        _record_violation(obs, violation)
        raise

    warnings = generate_warnings(semantics, large_batch_threshold=settings.large_batch_threshold)
    for warning in warnings:
        level = logging.WARNING if warning.level == "warn" else logging.INFO
        obs.log(level, LAYER, "Non-blocking warning", code=warning.code, warning=warning.message)

    duration = obs.end_timer(LAYER, started)
    obs.log(
        logging.INFO,
        LAYER,
        "Normalization complete",
        warning_count=len(warnings),
        duration_ms=round(duration, 2) if duration is not None else None,
    )
    obs.increment("normalized")
    obs.set_gauge("patch_count", len(patches))

    return replace(plan, warnings=warnings)


def _record_violation(obs: Observability, violation: InvariantViolation) -> None:
    obs.log(
        logging.ERROR,
        LAYER,
        str(violation),
        invariant=violation.invariant_number,
        severity=violation.severity,
        context=violation.context,
    )
    obs.increment("invariant_violations")


__all__ = ["NormalizationError", "NormalizedPlan", "generate_warnings", "normalize", "organize", "sort_desc"]
