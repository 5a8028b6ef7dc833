from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src = repo_root / "src"
    src_str = str(src)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)

    # Shared test doubles live in `tests/unit/fakes.py`.
    unit_root = Path(__file__).resolve().parent / "unit"
    unit_root_str = str(unit_root)
    if unit_root.is_dir() and unit_root_str not in sys.path:
        sys.path.insert(0, unit_root_str)


_ensure_src_on_path()

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def test_ca_pem() -> str:
    return (FIXTURES_DIR / "test_ca.pem").read_text(encoding="ascii")
