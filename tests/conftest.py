from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point QUILL_DATA_DIR at a temp dir and start from a fresh registry."""
    import quill.db_registry as registry_mod

    data = tmp_path / "quill-data"
    monkeypatch.setenv("QUILL_DATA_DIR", str(data))
    registry_mod.reset_registry()
    try:
        yield data
    finally:
        registry_mod.reset_registry()


@pytest.fixture
def registry(data_dir: Path):
    """A registry over the isolated storage root, installed as the process-wide one."""
    import quill.db_registry as registry_mod

    reg = registry_mod.DatabaseRegistry(data_dir / "databases", default_name="content.db")
    registry_mod.reset_registry(reg)
    try:
        yield reg
    finally:
        registry_mod.reset_registry()


@pytest.fixture
def index(tmp_path: Path):
    """A standalone content index in a temp file."""
    from quill.content_db import ContentIndex

    idx = ContentIndex(tmp_path / "test.db")
    try:
        yield idx
    finally:
        idx.close()
