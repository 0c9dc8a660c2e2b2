from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from linepatch.models import Document  # noqa: E402


@pytest.fixture()
def five_line_document() -> Document:
    """Document with lines A..E at revision v1."""

    return Document(lines=("A", "B", "C", "D", "E"), revision=1)


@pytest.fixture()
def make_document():
    def _make(lines: Sequence[str], revision: int = 1) -> Document:
        return Document(lines=tuple(lines), revision=revision)

    return _make
