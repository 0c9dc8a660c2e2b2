"""Engine configuration loaded from YAML with environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_CONFIG_NAME = "linepatch.yaml"
DEFAULT_MAX_BATCH_SIZE = 50
DEFAULT_LARGE_BATCH_THRESHOLD = 20

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Tunables shared by batch coercion, normalization and the CLI."""

    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    large_batch_threshold: int = DEFAULT_LARGE_BATCH_THRESHOLD
    log_level: str = "WARNING"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.WARNING)


def _coerce_positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def _coerce_log_level(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = value.strip().upper()
    return candidate if candidate in _LOG_LEVELS else None


def _load_mapping(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        return {}
    if not isinstance(loaded, Mapping):
        raise ValueError(f"Configuration in {path} must be a mapping at the top level.")
    return loaded


def config_from_mapping(config: Mapping[str, Any], *, env: Mapping[str, str] | None = None) -> EngineConfig:
    """Interpret the ``engine`` section of ``config`` and apply env overrides."""
    env_mapping = os.environ if env is None else env
    result = EngineConfig()

    section = config.get("engine")
    if isinstance(section, Mapping):
        max_batch_size = _coerce_positive_int(section.get("max_batch_size"))
        if max_batch_size is not None:
            result = replace(result, max_batch_size=max_batch_size)
        threshold = _coerce_positive_int(section.get("large_batch_threshold"))
        if threshold is not None:
            result = replace(result, large_batch_threshold=threshold)
        log_level = _coerce_log_level(section.get("log_level"))
        if log_level is not None:
            result = replace(result, log_level=log_level)

    env_max = _coerce_positive_int(env_mapping.get("LINEPATCH_MAX_BATCH_SIZE"))
    if env_max is not None:
        result = replace(result, max_batch_size=env_max)
    env_threshold = _coerce_positive_int(env_mapping.get("LINEPATCH_LARGE_BATCH_THRESHOLD"))
    if env_threshold is not None:
        result = replace(result, large_batch_threshold=env_threshold)
    env_level = _coerce_log_level(env_mapping.get("LINEPATCH_LOG_LEVEL"))
    if env_level is not None:
        result = replace(result, log_level=env_level)
    return result


def load_config(path: Path | str | None = None, *, env: Mapping[str, str] | None = None) -> EngineConfig:
    """Load engine configuration from ``path`` (default ``linepatch.yaml`` in cwd)."""
    candidate = Path(path) if path is not None else Path.cwd() / DEFAULT_CONFIG_NAME
    return config_from_mapping(_load_mapping(candidate), env=env)


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_LARGE_BATCH_THRESHOLD",
    "DEFAULT_MAX_BATCH_SIZE",
    "EngineConfig",
    "config_from_mapping",
    "load_config",
]
