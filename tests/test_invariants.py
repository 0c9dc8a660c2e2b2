from __future__ import annotations

import pytest

from linepatch.invariants import (
    Invariant,
    InvariantViolation,
    PatchEngineError,
    enforce_desc_order,
    enforce_fixed_snapshot_size,
    enforce_immutable_snapshot,
    enforce_independent_patches,
    enforce_insert_bounds,
    enforce_revision_increment,
    enforce_snapshot_ssot,
)
from linepatch.models import DeletePatch, IndexedPatch, InsertPatch, ReplacePatch


def test_snapshot_ssot_accepts_lines_within_snapshot() -> None:
    patches = [ReplacePatch(line_number=1, text="a"), DeletePatch(line_number=3)]

    enforce_snapshot_ssot(patches, 3)


def test_snapshot_ssot_rejects_line_past_snapshot() -> None:
    patches = [ReplacePatch(line_number=4, text="a")]

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_snapshot_ssot(patches, 3)

    violation = excinfo.value
    assert violation.invariant is Invariant.SNAPSHOT_SSOT
    assert violation.invariant_number == 1
    assert violation.context["line_number"] == 4
    assert violation.context["valid_range"] == "[1, 3]"
    assert str(violation).startswith("[INVARIANT 1 VIOLATION]")


def test_snapshot_ssot_leaves_insert_range_to_insert_bounds() -> None:
    enforce_snapshot_ssot([InsertPatch(line_number=4, text="tail")], 3)


def test_snapshot_ssot_rejects_non_sequence_and_non_integer_lines() -> None:
    with pytest.raises(InvariantViolation):
        enforce_snapshot_ssot("not patches", 3)  # type: ignore[arg-type]

    loose = ReplacePatch.model_construct(kind="replace", line_number="2", text="x")
    with pytest.raises(InvariantViolation) as excinfo:
        enforce_snapshot_ssot([loose], 3)
    assert "integer" in excinfo.value.reason


def test_desc_order_checks_each_kind_independently() -> None:
    ordered = [
        ReplacePatch(line_number=5, text="e"),
        ReplacePatch(line_number=2, text="b"),
        InsertPatch(line_number=6, text="f"),
        DeletePatch(line_number=4),
        DeletePatch(line_number=1),
    ]

    enforce_desc_order(ordered)


def test_desc_order_rejects_ascending_patches() -> None:
    entries = [
        IndexedPatch(index=0, patch=DeletePatch(line_number=1)),
        IndexedPatch(index=1, patch=DeletePatch(line_number=3)),
    ]

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_desc_order(entries)

    assert excinfo.value.invariant is Invariant.DESC_ORDER
    assert excinfo.value.context["violating_indices"] == [0, 1]
    assert excinfo.value.context["violating_line_numbers"] == [1, 3]


def test_immutable_snapshot_requires_tuple() -> None:
    enforce_immutable_snapshot(("a", "b"))

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_immutable_snapshot(["a", "b"])

    assert excinfo.value.invariant is Invariant.IMMUTABLE_SNAPSHOT


def test_insert_bounds_allow_append_position_only() -> None:
    enforce_insert_bounds([InsertPatch(line_number=4, text="tail")], 3)

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_insert_bounds([InsertPatch(line_number=5, text="far")], 3)

    assert excinfo.value.invariant is Invariant.INSERT_BOUNDS
    assert excinfo.value.context["valid_range"] == "[1, 4]"


def test_independent_patches_rejects_shared_line_across_kinds() -> None:
    patches = [ReplacePatch(line_number=2, text="b"), DeletePatch(line_number=2)]

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_independent_patches(patches)

    assert excinfo.value.invariant is Invariant.INDEPENDENT_PATCHES
    assert excinfo.value.context == {"line_number": 2, "first_patch_index": 0, "second_patch_index": 1}


@pytest.mark.parametrize(("before", "after"), [(3, 3), (3, 5), (3, 2)])
def test_revision_increment_requires_exactly_one(before: int, after: int) -> None:
    with pytest.raises(InvariantViolation) as excinfo:
        enforce_revision_increment(before, after)

    assert excinfo.value.invariant is Invariant.REVISION_INCREMENT


def test_revision_increment_accepts_plus_one() -> None:
    enforce_revision_increment(7, 8)


def test_fixed_snapshot_size_detects_length_change() -> None:
    enforce_fixed_snapshot_size(("a", "b"), 2)

    with pytest.raises(InvariantViolation) as excinfo:
        enforce_fixed_snapshot_size(("a", "b", "c"), 2)

    assert excinfo.value.invariant is Invariant.FIXED_SNAPSHOT_SIZE
    assert excinfo.value.context == {"captured_length": 2, "current_length": 3}


def test_violation_is_a_critical_engine_error_with_details() -> None:
    violation = InvariantViolation(5, "coupled", {"line_number": 9})

    assert isinstance(violation, PatchEngineError)
    assert violation.severity == "CRITICAL"
    assert violation.details["invariant"] == 5
    assert violation.details["name"] == "INDEPENDENT_PATCHES"
    assert violation.details["context"] == {"line_number": 9}
    assert violation.timestamp
