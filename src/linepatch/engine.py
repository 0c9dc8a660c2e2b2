"""Entry points that run a patch batch through semantics, normalization and execution."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from .config import DEFAULT_MAX_BATCH_SIZE, EngineConfig
from .executor import PatchExecutor
from .invariants import PatchEngineError
from .models import (
    LEGACY_KIND_NAMES,
    AnyPatch,
    DeletePatch,
    Document,
    InsertPatch,
    Patch,
    PatchApplication,
    PatchKind,
    ReplacePatch,
)
from .normalizer import NormalizedPlan, normalize
from .observability import Observability, resolve_observability

_PATCH_ADAPTER: TypeAdapter[Any] = TypeAdapter(Patch)
_PATCH_TYPES = (ReplacePatch, InsertPatch, DeletePatch)
_KIND_TAGS = frozenset(kind.value for kind in PatchKind)


class BatchValidationError(PatchEngineError):
    """Raised when a batch does not match the request contract."""

    def __init__(self, message: str, *, errors: Sequence[Mapping[str, Any]] = ()) -> None:
        self.errors: Tuple[Dict[str, Any], ...] = tuple(dict(item) for item in errors)
        super().__init__(message, details={"errors": list(self.errors)})


def _normalise_raw_patch(raw: Any) -> Any:
    """Map legacy wire keys (``type``, ``lineNumber``) onto the model fields."""
    if not isinstance(raw, Mapping):
        return raw
    payload = dict(raw)
    if "kind" not in payload and "type" in payload:
        payload["kind"] = payload.pop("type")
    kind = payload.get("kind")
    if isinstance(kind, str):
        legacy = LEGACY_KIND_NAMES.get(kind.strip())
        payload["kind"] = legacy.value if legacy is not None else kind.strip().lower()
    if "line_number" not in payload and "lineNumber" in payload:
        payload["line_number"] = payload.pop("lineNumber")
    if payload.get("kind") == "delete":
        payload.pop("text", None)
    return payload


def _format_validation_error(error: ValidationError) -> str:
    parts: List[str] = []
    for item in error.errors():
        # Drop the union tag pydantic prepends to the location.
        location = ".".join(str(part) for part in item.get("loc", ()) if part not in _KIND_TAGS)
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or str(error)


def coerce_patches(payload: Any, *, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> Tuple[AnyPatch, ...]:
    """Validate raw patch input into typed patches.

    Accepts patch models or mappings (including the legacy wire names).
    Every entry is checked so that all per-patch errors are reported together.
    """
    if payload is None:
        raise BatchValidationError("Patches parameter is required")
    if isinstance(payload, Mapping) and "patches" in payload:
        payload = payload["patches"]
    if isinstance(payload, (str, bytes)) or not isinstance(payload, Sequence):
        raise BatchValidationError(
            "Patches must be a list",
            errors=[{"reason": "invalid_type", "received": type(payload).__name__}],
        )
    if not payload:
        raise BatchValidationError(
            "Patches list cannot be empty (minimum 1)",
            errors=[{"reason": "empty_batch"}],
        )
    if len(payload) > max_batch_size:
        raise BatchValidationError(
            f"Too many patches ({len(payload)}), maximum {max_batch_size}",
            errors=[{"reason": "too_many_patches", "count": len(payload), "max": max_batch_size}],
        )

    patches: List[AnyPatch] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(payload):
        if isinstance(raw, _PATCH_TYPES):
            patches.append(raw)
            continue
        try:
            patches.append(_PATCH_ADAPTER.validate_python(_normalise_raw_patch(raw)))
        except ValidationError as error:
            errors.append({"index": index, "error": _format_validation_error(error)})
    if errors:
        raise BatchValidationError(f"{len(errors)} patch(es) failed validation", errors=errors)
    return tuple(patches)


def plan_patches(
    document: Document,
    patches: Any,
    *,
    snapshot_lines: Sequence[str] | None = None,
    observability: Observability | None = None,
    config: EngineConfig | None = None,
) -> NormalizedPlan:
    """Validate and normalize a batch without executing it."""
    settings = config or EngineConfig()
    typed = coerce_patches(patches, max_batch_size=settings.max_batch_size)
    snapshot = document.lines if snapshot_lines is None else snapshot_lines
    return normalize(snapshot, typed, observability=observability, config=settings)


def apply_patches(
    document: Document,
    patches: Any,
    *,
    snapshot_lines: Sequence[str] | None = None,
    observability: Observability | None = None,
    config: EngineConfig | None = None,
) -> PatchApplication:
    """Apply ``patches`` to ``document`` and return the outcome.

    Line numbers are read against ``snapshot_lines`` (default: the document's
    lines). Batch validation errors and invariant violations propagate before
    anything is applied. The returned application carries the new document
    value; ``document`` itself is never modified.
    """
    obs = resolve_observability(observability)
    plan = plan_patches(
        document,
        patches,
        snapshot_lines=snapshot_lines,
        observability=obs,
        config=config,
    )
    result = PatchExecutor.execute(plan, document, observability=obs)
    obs.emit_event(
        "patch_batch_applied",
        "engine",
        success=result.success,
        applied_count=result.applied_count,
        failed_count=len(result.failed_patches),
        revision_before=document.revision,
        revision_after=result.new_revision,
        warnings=[warning.code for warning in result.warnings],
    )
    if result.error:
        obs.log(
            logging.WARNING,
            "engine",
            "Patch batch aborted",
            applied_count=result.applied_count,
            error=result.error,
        )
    return result


__all__ = ["BatchValidationError", "apply_patches", "coerce_patches", "plan_patches"]
