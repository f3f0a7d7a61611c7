"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def build_tree(tmp_path: Path) -> Path:
    """A project root with a small ``_build/dev`` output tree."""
    dev = tmp_path / "_build" / "dev" / "lib" / "app" / "ebin"
    dev.mkdir(parents=True)
    (dev / "app.beam").write_bytes(b"\x00BEAM" * 64)
    (dev / "app.app").write_text("{application, app, []}.\n")
    (tmp_path / "_build" / "dev" / ".mix_manifest").write_text("v1\n")
    return tmp_path
