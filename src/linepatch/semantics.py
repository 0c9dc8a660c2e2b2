"""Read-only analysis of what a patch batch means against a snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from .models import AnyPatch, IndexedPatch, PatchKind, PatchMeaning, patch_kind
from .observability import Observability, resolve_observability


@dataclass(frozen=True, slots=True)
class SemanticsSummary:
    """Derived statistics for a batch."""

    total_patches: int
    replace_count: int
    insert_count: int
    delete_count: int
    lines_affected: int
    expected_final_length: int


class PatchSemantics:
    """Classify a batch by kind and target line without applying anything.

    ``expected_final_length`` is predictive only; execution can end with a
    different length when individual patches fail.
    """

    def __init__(
        self,
        snapshot_lines: Sequence[str],
        patches: Sequence[AnyPatch],
        observability: Observability | None = None,
    ) -> None:
        self._observability = resolve_observability(observability)
        started = self._observability.start_timer()
        self._observability.log(
            logging.INFO,
            "semantics",
            "Analyzing patch semantics",
            snapshot_length=len(snapshot_lines),
            patch_count=len(patches),
        )

        self.snapshot_lines: Tuple[str, ...] = tuple(snapshot_lines)
        self.snapshot_length = len(self.snapshot_lines)
        self.patches: Tuple[AnyPatch, ...] = tuple(patches)
        self.indexed: Tuple[IndexedPatch, ...] = tuple(
            IndexedPatch(index=index, patch=patch) for index, patch in enumerate(self.patches)
        )
        self.by_kind: Mapping[PatchKind, Tuple[IndexedPatch, ...]] = self._categorise_by_kind()
        self.by_line: Mapping[int, List[IndexedPatch]] = self._categorise_by_line()
        self.summary = self._summarise()

        duration = self._observability.end_timer("semantics", started)
        self._observability.log(
            logging.INFO,
            "semantics",
            "Semantics analysis complete",
            total_patches=self.summary.total_patches,
            replace_count=self.summary.replace_count,
            insert_count=self.summary.insert_count,
            delete_count=self.summary.delete_count,
            expected_final_length=self.summary.expected_final_length,
            independent=self.is_independent(),
            duration_ms=round(duration, 2) if duration is not None else None,
        )
        if not self.is_independent():
            self._observability.log(
                logging.WARNING,
                "semantics",
                "Semantic coupling detected: patches reference the same lines",
                collisions=sorted(self.collisions()),
            )
        self._observability.increment("semantics_analyzed")

    def _categorise_by_kind(self) -> Dict[PatchKind, Tuple[IndexedPatch, ...]]:
        buckets: Dict[PatchKind, List[IndexedPatch]] = {kind: [] for kind in PatchKind}
        for entry in self.indexed:
            buckets[patch_kind(entry.patch)].append(entry)
        return {kind: tuple(entries) for kind, entries in buckets.items()}

    def _categorise_by_line(self) -> Dict[int, List[IndexedPatch]]:
        by_line: Dict[int, List[IndexedPatch]] = {}
        for entry in self.indexed:
            by_line.setdefault(entry.line_number, []).append(entry)
        return by_line

    def _summarise(self) -> SemanticsSummary:
        insert_count = len(self.by_kind[PatchKind.INSERT])
        delete_count = len(self.by_kind[PatchKind.DELETE])
        return SemanticsSummary(
            total_patches=len(self.patches),
            replace_count=len(self.by_kind[PatchKind.REPLACE]),
            insert_count=insert_count,
            delete_count=delete_count,
            lines_affected=len(self.by_line),
            expected_final_length=self.snapshot_length + insert_count - delete_count,
        )

    @property
    def replaces(self) -> Tuple[IndexedPatch, ...]:
        return self.by_kind[PatchKind.REPLACE]

    @property
    def inserts(self) -> Tuple[IndexedPatch, ...]:
        return self.by_kind[PatchKind.INSERT]

    @property
    def deletes(self) -> Tuple[IndexedPatch, ...]:
        return self.by_kind[PatchKind.DELETE]

    def kinds_present(self) -> Tuple[PatchKind, ...]:
        return tuple(kind for kind in PatchKind if self.by_kind[kind])

    def collisions(self) -> Dict[int, List[IndexedPatch]]:
        """Return the lines targeted by more than one patch."""
        return {line: entries for line, entries in self.by_line.items() if len(entries) > 1}

    def is_independent(self) -> bool:
        return self.summary.lines_affected == self.summary.total_patches

    def is_valid_line_number(self, line_number: int) -> bool:
        return 1 <= line_number <= self.snapshot_length

    def meaning(self, index: int) -> PatchMeaning:
        patch = self.patches[index]
        line_number = patch.line_number
        target_content = self.snapshot_lines[line_number - 1] if self.is_valid_line_number(line_number) else None
        return PatchMeaning(
            index=index,
            kind=patch_kind(patch),
            target_line=line_number,
            target_content=target_content,
            new_content=getattr(patch, "text", None),
            is_valid=self.is_valid_line_number(line_number),
        )

    def meanings(self) -> Tuple[PatchMeaning, ...]:
        return tuple(self.meaning(index) for index in range(len(self.patches)))

    def describe(self) -> str:
        summary = self.summary
        return "\n".join(
            [
                "PatchSemantics:",
                f"  Snapshot size: {self.snapshot_length}",
                f"  Total patches: {summary.total_patches}",
                f"  - Replaces: {summary.replace_count}",
                f"  - Inserts: {summary.insert_count}",
                f"  - Deletes: {summary.delete_count}",
                f"  Lines affected: {summary.lines_affected}",
                f"  Expected final length: {summary.expected_final_length}",
                f"  Independent? {self.is_independent()}",
            ]
        )

    def __repr__(self) -> str:
        return (
            f"PatchSemantics(snapshot_length={self.snapshot_length}, "
            f"patches={self.summary.total_patches}, independent={self.is_independent()})"
        )


__all__ = ["PatchSemantics", "SemanticsSummary"]
