"""Guards for the seven consistency laws every patch batch must satisfy.

Each ``enforce_*`` function is stateless, returns ``None`` when the law holds
and raises :class:`InvariantViolation` otherwise. Violations are always fatal
to the batch; callers never downgrade them to warnings.

1. Snapshot SSOT: replace/delete targets lie within the frozen snapshot.
2. DESC order: within one patch kind, line numbers strictly decrease.
3. Immutable snapshot: the snapshot is a tuple, never the execution buffer.
4. Insert bounds: inserts lie within ``[1, snapshot_length + 1]``.
5. Independent patches: no two patches share a line number.
6. Revision increment: a batch that applied advances the revision by one.
7. Fixed snapshot size: the snapshot length never changes mid-batch.
"""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Iterable, Mapping, Sequence

from .models import AnyPatch, IndexedPatch, PatchKind, patch_kind


class PatchEngineError(RuntimeError):
    """Base error raised by the patch engine."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class Invariant(IntEnum):
    SNAPSHOT_SSOT = 1
    DESC_ORDER = 2
    IMMUTABLE_SNAPSHOT = 3
    INSERT_BOUNDS = 4
    INDEPENDENT_PATCHES = 5
    REVISION_INCREMENT = 6
    FIXED_SNAPSHOT_SIZE = 7


class InvariantViolation(PatchEngineError):
    """Raised when a batch breaks one of the system invariants."""

    severity = "CRITICAL"

    def __init__(self, invariant: Invariant | int, message: str, context: Mapping[str, Any] | None = None) -> None:
        self.invariant = Invariant(invariant)
        self.reason = message
        self.context: Dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(
            f"[INVARIANT {int(self.invariant)} VIOLATION] {message}",
            details={
                "invariant": int(self.invariant),
                "name": self.invariant.name,
                "severity": self.severity,
                "context": self.context,
                "timestamp": self.timestamp,
            },
        )

    @property
    def invariant_number(self) -> int:
        return int(self.invariant)


def _unwrap(entry: AnyPatch | IndexedPatch, position: int) -> tuple[int, AnyPatch]:
    if isinstance(entry, IndexedPatch):
        return entry.index, entry.patch
    return position, entry


def _is_line_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def enforce_snapshot_ssot(patches: Sequence[AnyPatch | IndexedPatch], snapshot_length: int) -> None:
    """Invariant 1: line-addressed patches must target a line of the snapshot.

    Inserts are checked for type only; their range is governed by invariant 4
    so the append position stays legal.
    """
    if isinstance(patches, (str, bytes)) or not isinstance(patches, SequenceABC):
        raise InvariantViolation(
            Invariant.SNAPSHOT_SSOT,
            "Patches must be a sequence",
            {"received": type(patches).__name__},
        )
    for position, entry in enumerate(patches):
        index, patch = _unwrap(entry, position)
        line_number = getattr(patch, "line_number", None)
        if not _is_line_number(line_number):
            raise InvariantViolation(
                Invariant.SNAPSHOT_SSOT,
                f"Patch {index}: line number must be an integer",
                {"index": index, "received": type(line_number).__name__},
            )
        if patch_kind(patch) is PatchKind.INSERT:
            continue
        if line_number < 1 or line_number > snapshot_length:
            raise InvariantViolation(
                Invariant.SNAPSHOT_SSOT,
                f"Patch {index}: line number violates snapshot bounds",
                {
                    "index": index,
                    "line_number": line_number,
                    "snapshot_length": snapshot_length,
                    "valid_range": f"[1, {snapshot_length}]",
                },
            )


def enforce_desc_order(patches: Sequence[AnyPatch | IndexedPatch]) -> None:
    """Invariant 2: patches of the same kind appear in strictly descending line order."""
    if len(patches) <= 1:
        return
    by_kind: Dict[PatchKind, list[tuple[int, int]]] = {}
    for position, entry in enumerate(patches):
        index, patch = _unwrap(entry, position)
        by_kind.setdefault(patch_kind(patch), []).append((index, patch.line_number))

    for kind, entries in by_kind.items():
        for (current_index, current_line), (next_index, next_line) in zip(entries, entries[1:]):
            if current_line <= next_line:
                raise InvariantViolation(
                    Invariant.DESC_ORDER,
                    f"{kind.value} patches not in descending order",
                    {
                        "kind": kind.value,
                        "violating_indices": [current_index, next_index],
                        "violating_line_numbers": [current_line, next_line],
                    },
                )


def enforce_immutable_snapshot(snapshot_lines: Any) -> None:
    """Invariant 3: the snapshot must be frozen."""
    if not isinstance(snapshot_lines, tuple):
        raise InvariantViolation(
            Invariant.IMMUTABLE_SNAPSHOT,
            "Snapshot must be frozen (immutable)",
            {"received": type(snapshot_lines).__name__, "suggestion": "Pass tuple(snapshot_lines)"},
        )


def enforce_insert_bounds(insert_patches: Iterable[AnyPatch | IndexedPatch], snapshot_length: int) -> None:
    """Invariant 4: inserts target an existing line or the append position."""
    for position, entry in enumerate(insert_patches):
        index, patch = _unwrap(entry, position)
        if patch.line_number < 1 or patch.line_number > snapshot_length + 1:
            raise InvariantViolation(
                Invariant.INSERT_BOUNDS,
                f"Insert patch {index}: line number out of snapshot bounds",
                {
                    "index": index,
                    "line_number": patch.line_number,
                    "snapshot_length": snapshot_length,
                    "valid_range": f"[1, {snapshot_length + 1}]",
                },
            )


def enforce_independent_patches(patches: Sequence[AnyPatch | IndexedPatch]) -> None:
    """Invariant 5: every patch in the batch targets a distinct line."""
    seen: Dict[int, int] = {}
    for position, entry in enumerate(patches):
        index, patch = _unwrap(entry, position)
        line_number = patch.line_number
        if line_number in seen:
            raise InvariantViolation(
                Invariant.INDEPENDENT_PATCHES,
                "Multiple patches target the same line",
                {
                    "line_number": line_number,
                    "first_patch_index": seen[line_number],
                    "second_patch_index": index,
                },
            )
        seen[line_number] = index


def enforce_revision_increment(before: int, after: int) -> None:
    """Invariant 6: the revision advances by exactly one."""
    if after == before:
        raise InvariantViolation(
            Invariant.REVISION_INCREMENT,
            "Revision did not increment after patch application",
            {"before": before, "after": after},
        )
    if after != before + 1:
        raise InvariantViolation(
            Invariant.REVISION_INCREMENT,
            "Revision increment is not exactly +1",
            {"before": before, "after": after},
        )


def enforce_fixed_snapshot_size(snapshot_lines: Sequence[str], captured_length: int) -> None:
    """Invariant 7: the snapshot keeps the length captured at normalization."""
    current_length = len(snapshot_lines)
    if current_length != captured_length:
        raise InvariantViolation(
            Invariant.FIXED_SNAPSHOT_SIZE,
            "Snapshot size changed between normalization and execution",
            {"captured_length": captured_length, "current_length": current_length},
        )


__all__ = [
    "Invariant",
    "InvariantViolation",
    "PatchEngineError",
    "enforce_desc_order",
    "enforce_fixed_snapshot_size",
    "enforce_immutable_snapshot",
    "enforce_independent_patches",
    "enforce_insert_bounds",
    "enforce_revision_increment",
    "enforce_snapshot_ssot",
]
