"""Registry of content database files.

Every database is one SQLite file under the storage root. Exactly one of
them is active; the pointer lives in ``active-database.json`` next to the
files and is re-read on every call, so a switch made by one caller is seen
by the next.

Creating and copying build the new file under a temporary name and rename
it into place only once it is complete.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from .content_db import ContentIndex, init_schema
from .errors import (
    AlreadyExistsError,
    ConfigCorruptError,
    IsActiveError,
    NotFoundError,
    PathValidationError,
    QuillError,
    StorageError,
)
from .settings import databases_dir, settings
from .validation import DATABASE_SUFFIX, validate_database_name

logger = logging.getLogger(__name__)

ACTIVE_CONFIG_NAME = "active-database.json"
_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def _now_iso() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class DatabaseInfo:
    name: str
    display_name: str
    created_at: str | None
    size_bytes: int
    content_count: int
    is_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "created_at": self.created_at,
            "size_bytes": self.size_bytes,
            "content_count": self.content_count,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class DatabaseStats:
    name: str
    size_bytes: int
    content_count: int
    last_modified: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "content_count": self.content_count,
            "last_modified": self.last_modified,
        }


class DatabaseRegistry:
    """Manage the database files under one storage root."""

    def __init__(
        self,
        root: Path | str,
        *,
        config_path: Path | str | None = None,
        default_name: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.config_path = Path(config_path) if config_path else self.root / ACTIVE_CONFIG_NAME
        self.default_name = validate_database_name(default_name or settings.default_database)
        self._lock = threading.RLock()
        self._indexes: dict[str, ContentIndex] = {}

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    def list_databases(self) -> list[DatabaseInfo]:
        """All readable databases under the root, sorted by name.

        Creates the root if it is missing. Files that cannot be read are
        logged and skipped.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create storage root {self.root}: {e}")
            return []

        active = self._resolve_active_name()
        databases = []
        for path in sorted(self.root.glob(f"*{DATABASE_SUFFIX}")):
            try:
                name = validate_database_name(path.name)
            except PathValidationError:
                logger.debug(f"Ignoring file with unsupported name: {path.name}")
                continue
            try:
                databases.append(self._info(name, is_active=name == active))
            except QuillError as e:
                logger.warning(f"Skipping unreadable database {name}: {e.message}")
                self._evict(name)
        return databases

    def get_active_database(self) -> DatabaseInfo:
        """Resolve the active database, falling back to the default.

        The default database is created on first use.
        """
        name = self._resolve_active_name()
        if name == self.default_name and not self._path(name).exists():
            self._ensure_default()
        return self._info(name, is_active=True)

    def get_database_stats(self, name: str) -> DatabaseStats:
        name = self._require_existing(name)
        path = self._path(name)
        stats = self.get_index(name).get_stats()
        last_modified = stats.last_modified
        if last_modified is None:
            last_modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc).isoformat()
        return DatabaseStats(
            name=name,
            size_bytes=_file_size(path),
            content_count=stats.count,
            last_modified=last_modified,
        )

    # -------------------------------------------------------------------------
    # Active pointer
    # -------------------------------------------------------------------------

    def set_active_database(self, name: str) -> DatabaseInfo:
        """Point the registry at another existing database.

        Raises:
            NotFoundError: If no database file has that name.
        """
        with self._lock:
            name = self._require_existing(name)
            payload = json.dumps({"activeDatabase": name}, indent=2)
            try:
                self._atomic_write(self.config_path, payload)
            except OSError as e:
                raise StorageError(
                    f"Could not write active database config: {e}",
                    operation="set_active_database",
                    path=str(self.config_path),
                ) from e
        logger.info(f"Active database set to {name}")
        return self._info(name, is_active=True)

    def _resolve_active_name(self) -> str:
        """Read the active pointer; any problem with it falls back to the default."""
        if not self.config_path.exists():
            return self.default_name

        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self._log_corrupt_config(f"Unreadable active database config: {e}")
            return self.default_name

        name = data.get("activeDatabase") if isinstance(data, dict) else None
        if not isinstance(name, str):
            self._log_corrupt_config("Active database config has no activeDatabase name")
            return self.default_name

        try:
            name = validate_database_name(name)
        except PathValidationError as e:
            self._log_corrupt_config(f"Active database config names an invalid file: {e.message}")
            return self.default_name

        if not self._path(name).exists():
            logger.warning(f"Active database {name} is missing; falling back to {self.default_name}")
            return self.default_name
        return name

    def _log_corrupt_config(self, message: str) -> None:
        error = ConfigCorruptError(message, path=str(self.config_path))
        logger.warning(f"{error.message}; falling back to {self.default_name}")

    # -------------------------------------------------------------------------
    # Create / copy / delete
    # -------------------------------------------------------------------------

    def create_database(self, name: str, display_name: str | None = None) -> DatabaseInfo:
        """Create an empty database with the content schema.

        Raises:
            AlreadyExistsError: If a database with that name exists.
        """
        name = validate_database_name(name)
        with self._lock:
            self._require_absent(name)

            def populate(conn: sqlite3.Connection) -> None:
                init_schema(conn)
                _write_meta(conn, display_name or Path(name).stem)

            self._build_database(name, populate, operation="create_database")

        logger.info(f"Created database {name}")
        return self._info(name, is_active=name == self._resolve_active_name())

    def copy_database(self, source: str, dest: str, display_name: str | None = None) -> DatabaseInfo:
        """Copy a whole database, records and index together, under a new name.

        Uses SQLite's online backup so the copy is a consistent snapshot even
        while the source is being written. The source is not modified.

        Raises:
            NotFoundError: If the source does not exist.
            AlreadyExistsError: If the destination exists.
        """
        source = self._require_existing(source)
        dest = validate_database_name(dest)
        with self._lock:
            self._require_absent(dest)
            source_path = self._path(source)

            def populate(conn: sqlite3.Connection) -> None:
                source_conn = sqlite3.connect(str(source_path), timeout=settings.sqlite_timeout)
                try:
                    source_conn.backup(conn)
                finally:
                    source_conn.close()
                conn.execute("BEGIN IMMEDIATE")
                try:
                    init_schema(conn)
                    _write_meta(conn, display_name or Path(dest).stem, replace=True)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

            self._build_database(dest, populate, operation="copy_database", in_transaction=False)

        logger.info(f"Copied database {source} -> {dest}")
        return self._info(dest, is_active=False)

    def delete_database(self, name: str) -> None:
        """Delete a database file and its WAL sidecars.

        Raises:
            NotFoundError: If the database does not exist.
            IsActiveError: If it is the active database.
        """
        with self._lock:
            name = self._require_existing(name)
            if name == self._resolve_active_name():
                raise IsActiveError(f"Cannot delete the active database: {name}", database=name)

            self._evict(name)
            path = self._path(name)
            try:
                path.unlink()
                for suffix in _SIDECAR_SUFFIXES:
                    Path(f"{path}{suffix}").unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Could not delete database {name}: {e}",
                    operation="delete_database",
                    path=str(path),
                ) from e
        logger.info(f"Deleted database {name}")

    # -------------------------------------------------------------------------
    # Index handles
    # -------------------------------------------------------------------------

    def get_index(self, name: str | None = None) -> ContentIndex:
        """Content index of a database; the active one when no name is given.

        Handles are cached per file. The active pointer is not: it is
        resolved again on every call.
        """
        if name is None:
            name = self._resolve_active_name()
            if name == self.default_name and not self._path(name).exists():
                self._ensure_default()
        else:
            name = self._require_existing(name)

        with self._lock:
            index = self._indexes.get(name)
            if index is None:
                index = ContentIndex(self._path(name), create=False)
                self._indexes[name] = index
            return index

    def close(self) -> None:
        """Close every cached index handle."""
        with self._lock:
            for index in self._indexes.values():
                index.close()
            self._indexes.clear()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _path(self, name: str) -> Path:
        return self.root / name

    def _require_existing(self, name: str) -> str:
        name = validate_database_name(name)
        if not self._path(name).exists():
            raise NotFoundError(
                f"Database not found: {name}",
                resource_type="database",
                resource_id=name,
            )
        return name

    def _require_absent(self, name: str) -> None:
        if self._path(name).exists():
            raise AlreadyExistsError(
                f"Database already exists: {name}",
                resource_type="database",
                resource_id=name,
            )

    def _ensure_default(self) -> None:
        with self._lock:
            if self._path(self.default_name).exists():
                return
            logger.info(f"Creating default database {self.default_name}")
            self.create_database(self.default_name)

    def _evict(self, name: str) -> None:
        with self._lock:
            index = self._indexes.pop(name, None)
        if index is not None:
            index.close()

    def _info(self, name: str, *, is_active: bool) -> DatabaseInfo:
        index = self.get_index(name)
        meta = index.get_metadata()
        stats = index.get_stats()
        return DatabaseInfo(
            name=name,
            display_name=meta.get("display_name") or Path(name).stem,
            created_at=meta.get("created_at"),
            size_bytes=_file_size(self._path(name)),
            content_count=stats.count,
            is_active=is_active,
        )

    def _build_database(
        self,
        name: str,
        populate: Callable[[sqlite3.Connection], None],
        *,
        operation: str,
        in_transaction: bool = True,
    ) -> None:
        """Build a database under a temporary name, then rename it into place."""
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path(name)
        temp = self.root / f".{name}.{uuid4().hex[:8]}.tmp"
        try:
            conn = sqlite3.connect(str(temp), timeout=settings.sqlite_timeout, isolation_level=None)
            try:
                if in_transaction:
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        populate(conn)
                        conn.execute("COMMIT")
                    except Exception:
                        conn.execute("ROLLBACK")
                        raise
                else:
                    populate(conn)
            finally:
                conn.close()
            os.replace(temp, target)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(
                f"{operation} failed for {name}: {e}",
                operation=operation,
                path=str(target),
            ) from e
        finally:
            for leftover in [temp, *(Path(f"{temp}{s}") for s in _SIDECAR_SUFFIXES)]:
                try:
                    leftover.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {leftover}: {e}")

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
        try:
            temp.write_text(text, encoding="utf-8")
            os.replace(temp, path)
        finally:
            temp.unlink(missing_ok=True)


def _write_meta(conn: sqlite3.Connection, display_name: str, *, replace: bool = False) -> None:
    conn.execute(
        "INSERT INTO database_meta (key, value) VALUES ('display_name', ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (display_name,),
    )
    if replace:
        conn.execute(
            "INSERT INTO database_meta (key, value) VALUES ('created_at', ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (_now_iso(),),
        )


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


# =============================================================================
# Process-wide registry
# =============================================================================

_registry_instance: DatabaseRegistry | None = None
_registry_lock = threading.Lock()


def get_registry() -> DatabaseRegistry:
    """Get the process-wide registry, rooted at the configured storage directory."""
    global _registry_instance
    with _registry_lock:
        if _registry_instance is None:
            _registry_instance = DatabaseRegistry(databases_dir())
        return _registry_instance


def reset_registry(registry: DatabaseRegistry | None = None) -> None:
    """Close the current registry and install ``registry`` (or none) in its place."""
    global _registry_instance
    with _registry_lock:
        if _registry_instance is not None and _registry_instance is not registry:
            _registry_instance.close()
        _registry_instance = registry
