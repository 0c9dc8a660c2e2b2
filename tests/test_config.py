from __future__ import annotations

import logging
import textwrap
from pathlib import Path

import pytest

from linepatch.config import EngineConfig, config_from_mapping, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.yaml", env={})

    assert config == EngineConfig()
    assert config.max_batch_size == 50
    assert config.large_batch_threshold == 20
    assert config.logging_level == logging.WARNING


def test_load_config_reads_engine_section(tmp_path: Path) -> None:
    path = tmp_path / "linepatch.yaml"
    path.write_text(
        textwrap.dedent(
            """
            engine:
              max_batch_size: 10
              large_batch_threshold: "5"
              log_level: debug
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )

    config = load_config(path, env={})

    assert config == EngineConfig(max_batch_size=10, large_batch_threshold=5, log_level="DEBUG")
    assert config.logging_level == logging.DEBUG


def test_environment_overrides_file_values() -> None:
    config = config_from_mapping(
        {"engine": {"max_batch_size": 10}},
        env={"LINEPATCH_MAX_BATCH_SIZE": "25", "LINEPATCH_LOG_LEVEL": "info"},
    )

    assert config.max_batch_size == 25
    assert config.log_level == "INFO"


def test_invalid_values_are_ignored() -> None:
    config = config_from_mapping(
        {"engine": {"max_batch_size": -3, "large_batch_threshold": "many", "log_level": "loud"}},
        env={"LINEPATCH_LARGE_BATCH_THRESHOLD": "0"},
    )

    assert config == EngineConfig()


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "linepatch.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path, env={})
