from __future__ import annotations

import pytest
from pydantic import ValidationError

from linepatch.models import (
    DeletePatch,
    Document,
    InsertPatch,
    PatchApplication,
    PatchFailure,
    ReplacePatch,
    format_revision,
    parse_revision,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(3, 3), ("v12", 12), ("  v4 ", 4), ("rev", 1), (None, 1), ("", 1), (0, 1), (True, 1)],
)
def test_parse_revision(value, expected: int) -> None:
    assert parse_revision(value) == expected


def test_format_revision() -> None:
    assert format_revision(2) == "v2"


def test_document_from_text_splits_lines() -> None:
    document = Document.from_text("a\nb\nc", revision="v3")

    assert document.lines == ("a", "b", "c")
    assert document.text == "a\nb\nc"
    assert document.revision == 3
    assert document.revision_label == "v3"
    assert Document.from_text("").lines == ()


def test_document_coerces_lines_to_tuple() -> None:
    document = Document(lines=["a", "b"])  # type: ignore[arg-type]

    assert document.lines == ("a", "b")
    assert document.with_lines(["z"], revision=5) == Document(lines=("z",), revision=5)


def test_delete_patch_carries_no_text() -> None:
    with pytest.raises(ValidationError):
        DeletePatch(line_number=1, text="nope")  # type: ignore[call-arg]


@pytest.mark.parametrize("model", [ReplacePatch, InsertPatch])
def test_text_required_for_replace_and_insert(model) -> None:
    with pytest.raises(ValidationError):
        model(line_number=1)


def test_patches_are_frozen() -> None:
    patch = ReplacePatch(line_number=1, text="a")

    with pytest.raises(ValidationError):
        patch.line_number = 2  # type: ignore[misc]


def test_application_to_dict_reports_failures() -> None:
    failure = PatchFailure(index=2, patch=DeletePatch(line_number=9), error="Cannot delete line 9")
    application = PatchApplication(
        success=False,
        applied_count=0,
        document=Document(lines=("x",), revision=4),
        failed_patches=(failure,),
    )

    assert application.to_dict() == {
        "success": False,
        "appliedCount": 0,
        "failedPatches": [
            {"index": 2, "patch": {"kind": "delete", "lineNumber": 9}, "error": "Cannot delete line 9"}
        ],
        "newRevision": "v4",
        "newText": "x",
    }
