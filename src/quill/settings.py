from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    try:
        val = int(os.environ.get(name, str(default)))
    except ValueError:
        return default
    if min_val is not None and val < min_val:
        return min_val
    return val


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Static settings for the content store.

    Keep defaults local and auditable; everything lives under one data dir.
    """

    root_dir: Path = Path.cwd()
    data_dir: Path = Path(os.environ.get("QUILL_DATA_DIR", str(root_dir / ".quill-data")))
    default_database: str = os.environ.get("QUILL_DEFAULT_DATABASE", "content.db")
    log_path: Path = data_dir / "quill.log"
    log_level: str = os.environ.get("QUILL_LOG_LEVEL", "INFO")
    log_max_bytes: int = _env_int("QUILL_LOG_MAX_BYTES", 1_000_000, min_val=10_000)
    log_backup_count: int = _env_int("QUILL_LOG_BACKUP_COUNT", 3, min_val=0)

    # SQLite busy timeout; writers wait this long for BEGIN IMMEDIATE.
    sqlite_timeout: float = _env_float("QUILL_SQLITE_TIMEOUT", 5.0)


settings = Settings()


def data_dir() -> Path:
    """Resolve the data directory, honouring QUILL_DATA_DIR set after import."""
    return Path(os.environ.get("QUILL_DATA_DIR", str(settings.data_dir)))


def databases_dir() -> Path:
    """Storage root holding one SQLite file per database."""
    return data_dir() / "databases"
