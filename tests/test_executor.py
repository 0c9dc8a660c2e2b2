from __future__ import annotations

from typing import Sequence

import pytest

from linepatch.executor import PatchExecutor, increment_revision
from linepatch.models import AnyPatch, DeletePatch, Document, InsertPatch, ReplacePatch
from linepatch.normalizer import NormalizedPlan, normalize, organize
from linepatch.observability import MetricsRecorder, Observability
from linepatch.semantics import PatchSemantics


def _unchecked_plan(lines: Sequence[str], patches: Sequence[AnyPatch]) -> NormalizedPlan:
    """Organize patches without invariant checks to exercise per-patch failures."""
    return organize(PatchSemantics(tuple(lines), patches))


def test_executor_applies_replace_scenario(five_line_document: Document) -> None:
    patches = [
        ReplacePatch(line_number=5, text="E2"),
        ReplacePatch(line_number=2, text="B2"),
        ReplacePatch(line_number=1, text="A2"),
    ]
    plan = normalize(five_line_document.lines, patches)

    result = PatchExecutor.execute(plan, five_line_document)

    assert result.success
    assert result.applied_count == 3
    assert result.lines == ("A2", "B2", "C", "D", "E2")
    assert result.new_revision_label == "v2"
    assert result.new_text == "A2\nB2\nC\nD\nE2"
    assert five_line_document.lines == ("A", "B", "C", "D", "E")


def test_executor_records_insert_past_end_as_failure(make_document) -> None:
    document = make_document(["one", "two", "three"])
    patch = InsertPatch(line_number=5, text="X")

    result = PatchExecutor.execute(_unchecked_plan(document.lines, [patch]), document)

    assert not result.success
    assert result.applied_count == 0
    assert len(result.failed_patches) == 1
    assert result.failed_patches[0].patch == patch
    assert result.failed_patches[0].error == "Cannot insert at line 5"
    assert result.new_revision == document.revision
    assert result.document is document


def test_executor_insert_boundary(make_document) -> None:
    document = make_document(["a", "b", "c"])

    appended = PatchExecutor.execute(
        _unchecked_plan(document.lines, [InsertPatch(line_number=4, text="d")]),
        document,
    )
    beyond = PatchExecutor.execute(
        _unchecked_plan(document.lines, [InsertPatch(line_number=5, text="e")]),
        document,
    )

    assert appended.success
    assert appended.lines == ("a", "b", "c", "d")
    assert not beyond.success
    assert beyond.lines == ("a", "b", "c")


@pytest.mark.parametrize(
    "patch",
    [
        ReplacePatch(line_number=6, text="x"),
        DeletePatch(line_number=6),
        # Below 1 cannot pass model validation, so build these unvalidated.
        ReplacePatch.model_construct(line_number=0, text="x"),
        InsertPatch.model_construct(line_number=0, text="x"),
        DeletePatch.model_construct(line_number=0),
        DeletePatch.model_construct(line_number=-1),
    ],
)
def test_executor_rejects_out_of_range_line_patches(five_line_document: Document, patch: AnyPatch) -> None:
    result = PatchExecutor.execute(_unchecked_plan(five_line_document.lines, [patch]), five_line_document)

    assert not result.success
    assert [failure.patch for failure in result.failed_patches] == [patch]
    assert result.lines == five_line_document.lines
    assert result.applied_count == 0
    assert result.new_revision == five_line_document.revision


def test_executor_commits_partial_progress(five_line_document: Document) -> None:
    patches = [
        ReplacePatch(line_number=9, text="bad"),
        ReplacePatch(line_number=3, text="C2"),
        DeletePatch(line_number=1),
    ]

    result = PatchExecutor.execute(_unchecked_plan(five_line_document.lines, patches), five_line_document)

    assert not result.success
    assert result.applied_count == 2
    assert result.failed_patches[0].index == 0
    assert result.failed_patches[0].error == "Line 9 out of snapshot bounds"
    assert result.lines == ("B", "C2", "D", "E")
    assert result.new_revision == 2


def test_executor_runs_phases_in_fixed_order(five_line_document: Document) -> None:
    patches = [
        DeletePatch(line_number=4),
        InsertPatch(line_number=2, text="X"),
        ReplacePatch(line_number=5, text="E2"),
        DeletePatch(line_number=1),
        InsertPatch(line_number=6, text="F"),
    ]
    plan = normalize(five_line_document.lines, patches)

    result = PatchExecutor.execute(plan, five_line_document)

    # replace: A B C D E2; insert 6 then 2: A X B C D E2 F; delete 4 then 1: X B D E2 F
    assert result.success
    assert result.applied_count == 5
    assert result.lines == ("X", "B", "D", "E2", "F")


def test_executor_catches_snapshot_size_mismatch(five_line_document: Document) -> None:
    plan = normalize(five_line_document.lines, [ReplacePatch(line_number=1, text="A2")])
    grown = five_line_document.with_lines(five_line_document.lines + ("F",))

    result = PatchExecutor.execute(plan, grown)

    assert not result.success
    assert result.applied_count == 0
    assert result.error is not None and "INVARIANT 7" in result.error
    assert result.document is grown


def test_executor_reports_metrics_when_attached(five_line_document: Document) -> None:
    metrics = MetricsRecorder()
    observability = Observability(metrics=metrics, batch_id="batch-1")
    plan = _unchecked_plan(five_line_document.lines, [DeletePatch(line_number=2), DeletePatch(line_number=8)])

    PatchExecutor.execute(plan, five_line_document, observability=observability)

    tags = {"batch_id": "batch-1"}
    assert metrics.counter("patches_applied", tags) == 1
    assert metrics.counter("patches_failed", tags) == 1
    assert metrics.counter("batches_completed", tags) == 0
    assert metrics.histogram("executor", tags) is not None


def test_increment_revision_adds_one() -> None:
    assert increment_revision(1) == 2
    assert increment_revision(41) == 42
