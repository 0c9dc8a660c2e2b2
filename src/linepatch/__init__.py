"""Deterministic batch application of line-level patches."""

from .config import EngineConfig, load_config
from .engine import BatchValidationError, apply_patches, coerce_patches, plan_patches
from .executor import PatchExecutor, execute, increment_revision
from .invariants import Invariant, InvariantViolation, PatchEngineError
from .models import (
    DeletePatch,
    Document,
    InsertPatch,
    NormalizationWarning,
    PatchApplication,
    PatchFailure,
    PatchKind,
    ReplacePatch,
    format_revision,
    parse_revision,
)
from .normalizer import NormalizationError, NormalizedPlan, normalize
from .observability import MetricsRecorder, Observability
from .semantics import PatchSemantics

__all__ = [
    "BatchValidationError",
    "DeletePatch",
    "Document",
    "EngineConfig",
    "InsertPatch",
    "Invariant",
    "InvariantViolation",
    "MetricsRecorder",
    "NormalizationError",
    "NormalizationWarning",
    "NormalizedPlan",
    "Observability",
    "PatchApplication",
    "PatchEngineError",
    "PatchExecutor",
    "PatchFailure",
    "PatchKind",
    "PatchSemantics",
    "ReplacePatch",
    "apply_patches",
    "coerce_patches",
    "execute",
    "format_revision",
    "increment_revision",
    "load_config",
    "normalize",
    "parse_revision",
    "plan_patches",
]
