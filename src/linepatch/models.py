"""Typed patches, documents and results exchanged by the patch engine."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Mapping, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class PatchKind(str, Enum):
    """Supported line-level edit operations."""

    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"


# Names used by the original tool schema; accepted on input only.
LEGACY_KIND_NAMES: Dict[str, PatchKind] = {
    "write_replace_line": PatchKind.REPLACE,
    "insert_line": PatchKind.INSERT,
    "delete_line": PatchKind.DELETE,
}


class PatchModel(BaseModel):
    """Base Pydantic model for immutable patch variants."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ReplacePatch(PatchModel):
    """Overwrite the content of an existing snapshot line."""

    kind: Literal["replace"] = "replace"
    line_number: int = Field(ge=1, strict=True)
    text: str


class InsertPatch(PatchModel):
    """Insert a new line so that it occupies ``line_number`` afterwards."""

    kind: Literal["insert"] = "insert"
    line_number: int = Field(ge=1, strict=True)
    text: str


class DeletePatch(PatchModel):
    """Remove an existing snapshot line."""

    kind: Literal["delete"] = "delete"
    line_number: int = Field(ge=1, strict=True)


Patch = Annotated[Union[ReplacePatch, InsertPatch, DeletePatch], Field(discriminator="kind")]
AnyPatch = Union[ReplacePatch, InsertPatch, DeletePatch]


def patch_kind(patch: AnyPatch) -> PatchKind:
    return PatchKind(patch.kind)


def patch_to_dict(patch: AnyPatch) -> Dict[str, Any]:
    """Render ``patch`` using the camel-case wire keys."""
    payload: Dict[str, Any] = {"kind": patch.kind, "lineNumber": patch.line_number}
    text = getattr(patch, "text", None)
    if text is not None:
        payload["text"] = text
    return payload


@dataclass(frozen=True, slots=True)
class IndexedPatch:
    """Patch paired with its position in the caller's batch."""

    index: int
    patch: AnyPatch

    @property
    def kind(self) -> PatchKind:
        return patch_kind(self.patch)

    @property
    def line_number(self) -> int:
        return self.patch.line_number

    @property
    def text(self) -> str | None:
        return getattr(self.patch, "text", None)


_REVISION_PATTERN = re.compile(r"v(\d+)")


def parse_revision(value: int | str | None) -> int:
    """Resolve an integer or legacy ``vN`` token into a revision counter.

    Missing or unparseable tokens resolve to ``1`` so that the next revision
    is ``2``.
    """
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return value if value >= 1 else 1
    if isinstance(value, str):
        match = _REVISION_PATTERN.search(value.strip())
        if match:
            return int(match.group(1))
    return 1


def format_revision(revision: int) -> str:
    return f"v{revision}"


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable line-addressed document value owned by the caller."""

    lines: Tuple[str, ...] = ()
    revision: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))

    @classmethod
    def from_text(cls, text: str, *, revision: int | str | None = 1) -> "Document":
        lines = tuple(text.split("\n")) if text else ()
        return cls(lines=lines, revision=parse_revision(revision))

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def revision_label(self) -> str:
        return format_revision(self.revision)

    def with_lines(self, lines: Sequence[str], *, revision: int | None = None) -> "Document":
        return replace(
            self,
            lines=tuple(lines),
            revision=self.revision if revision is None else revision,
        )


@dataclass(frozen=True, slots=True)
class PatchFailure:
    """Single patch that could not be applied during execution."""

    index: int
    patch: AnyPatch
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "patch": patch_to_dict(self.patch), "error": self.error}


@dataclass(frozen=True, slots=True)
class NormalizationWarning:
    """Advisory, non-blocking observation about a batch."""

    code: str
    level: Literal["warn", "info"]
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "level": self.level, "message": self.message}


@dataclass(slots=True)
class PatchApplication:
    """Outcome of executing a normalized batch against a document."""

    success: bool
    applied_count: int
    document: Document
    failed_patches: Tuple[PatchFailure, ...] = ()
    error: str | None = None
    warnings: Tuple[NormalizationWarning, ...] = ()
    batch_id: str | None = None
    previous_revision: int | None = None

    @property
    def new_revision(self) -> int:
        return self.document.revision

    @property
    def new_revision_label(self) -> str:
        return self.document.revision_label

    @property
    def new_text(self) -> str:
        return self.document.text

    @property
    def lines(self) -> Tuple[str, ...]:
        return self.document.lines

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "appliedCount": self.applied_count,
            "failedPatches": [failure.to_dict() for failure in self.failed_patches],
            "newRevision": self.new_revision_label,
            "newText": self.new_text,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.warnings:
            payload["warnings"] = [warning.to_dict() for warning in self.warnings]
        if self.batch_id:
            payload["batchId"] = self.batch_id
        return payload


@dataclass(frozen=True, slots=True)
class PatchMeaning:
    """Human-oriented interpretation of a single patch against the snapshot."""

    index: int
    kind: PatchKind
    target_line: int
    target_content: str | None
    new_content: str | None
    is_valid: bool

    def to_dict(self) -> Mapping[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind.value,
            "target_line": self.target_line,
            "target_content": self.target_content,
            "new_content": self.new_content,
            "is_valid": self.is_valid,
        }


__all__ = [
    "AnyPatch",
    "DeletePatch",
    "Document",
    "IndexedPatch",
    "InsertPatch",
    "LEGACY_KIND_NAMES",
    "NormalizationWarning",
    "Patch",
    "PatchApplication",
    "PatchFailure",
    "PatchKind",
    "PatchMeaning",
    "ReplacePatch",
    "format_revision",
    "parse_revision",
    "patch_kind",
    "patch_to_dict",
]
