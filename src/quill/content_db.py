"""SQLite content index for one database file.

Each database file holds the stored content records and the index that maps
stable content ids to their storage keys. The two tables are only ever
changed together inside one ``BEGIN IMMEDIATE`` transaction, so a failure
part-way through never leaves an orphaned index entry or an unindexed record.

Connections are thread-local; WAL journaling keeps readers unblocked while a
writer holds the lock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

import yaml

from .errors import AlreadyExistsError, NotFoundError, StorageError, ValidationError
from .settings import settings
from .validation import MAX_SLUG_LENGTH

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

CONTENT_STATUSES = ("draft", "published", "archived")


def _now_iso() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def _new_storage_key() -> str:
    return f"rec-{uuid4().hex[:12]}"


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class IndexEntry:
    """One content id and the stored record it points at."""

    content_id: str
    storage_key: str
    last_modified: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_id": self.content_id,
            "storage_key": self.storage_key,
            "last_modified": self.last_modified,
        }


@dataclass
class StoredRecord:
    """A persisted content record: metadata columns plus the markdown body."""

    content_id: str
    storage_key: str
    slug: str
    title: str
    status: str
    category: str | None
    frontmatter: dict[str, Any]
    body: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class IndexStats:
    count: int
    last_modified: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "last_modified": self.last_modified}


@dataclass(frozen=True)
class TagCatalogEntry:
    """A known tag, kept even when no record currently uses it."""

    name: str
    created_at: str
    last_used: str | None = None
    metadata: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at,
            "last_used": self.last_used,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ManualDateEntry:
    """A display date set by hand for a content id."""

    content_id: str
    date: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"content_id": self.content_id, "date": self.date, "updated_at": self.updated_at}


@dataclass
class IntegrityReport:
    """Result of cross-checking the index against the stored records."""

    dangling_entries: list[str] = field(default_factory=list)
    unindexed_records: list[str] = field(default_factory=list)
    sqlite_ok: bool = True

    @property
    def ok(self) -> bool:
        return self.sqlite_ok and not self.dangling_entries and not self.unindexed_records

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "dangling_entries": self.dangling_entries,
            "unindexed_records": self.unindexed_records,
            "sqlite_ok": self.sqlite_ok,
        }


# =============================================================================
# Schema
# =============================================================================


# Executed one by one: executescript() would commit the enclosing transaction
_SCHEMA_STATEMENTS = (
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS database_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS content_records (
        storage_key TEXT PRIMARY KEY,
        slug TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'published', 'archived')),
        category TEXT,
        frontmatter TEXT NOT NULL DEFAULT '',
        body TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS content_index (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        content_id TEXT NOT NULL UNIQUE,
        storage_key TEXT NOT NULL UNIQUE
            REFERENCES content_records(storage_key) ON DELETE RESTRICT,
        last_modified TEXT NOT NULL
    )""",
    "CREATE INDEX IF NOT EXISTS idx_content_records_status ON content_records(status)",
    """CREATE TABLE IF NOT EXISTS tag_catalog (
        name TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        last_used TEXT,
        metadata TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS manual_dates (
        content_id TEXT PRIMARY KEY,
        date TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",
)


def init_schema(conn: sqlite3.Connection) -> None:
    """Create the tables of an empty database. Safe to call repeatedly."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ).fetchone()
    if row is not None:
        version = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if version and version[0] >= SCHEMA_VERSION:
            return

    for statement in _SCHEMA_STATEMENTS:
        conn.execute(statement)
    conn.execute("DELETE FROM schema_version")
    conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    conn.execute(
        "INSERT OR IGNORE INTO database_meta (key, value) VALUES ('created_at', ?)",
        (_now_iso(),),
    )


def _dump_frontmatter(frontmatter: dict[str, Any]) -> str:
    if not frontmatter:
        return ""
    return yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)


def _load_frontmatter(text: str) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning(f"Stored frontmatter is not valid YAML: {e}")
        return {}
    return data if isinstance(data, dict) else {}


# =============================================================================
# Content Index
# =============================================================================


class ContentIndex:
    """Content records and their id index inside one SQLite file."""

    def __init__(self, path: Path | str, *, create: bool = True) -> None:
        self.path = Path(path)
        if not create and not self.path.exists():
            raise NotFoundError(
                f"Database not found: {self.path.name}",
                resource_type="database",
                resource_id=self.path.name,
            )
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._schema_ready = False

    def __enter__(self) -> ContentIndex:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Connections and transactions
    # -------------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        with self._storage_errors("connect"):
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                timeout=settings.sqlite_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            try:
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
            except sqlite3.Error:
                conn.close()
                raise

        with self._lock:
            self._connections.append(conn)
            if not self._schema_ready:
                with self._storage_errors("init_schema"):
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        init_schema(conn)
                        conn.execute("COMMIT")
                    except Exception:
                        conn.execute("ROLLBACK")
                        raise
                self._schema_ready = True

        self._local.conn = conn
        return conn

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        """Translate low-level failures into StorageError."""
        try:
            yield
        except sqlite3.IntegrityError:
            raise
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Storage failure during {operation} on {self.path.name}: {e}")
            raise StorageError(
                f"Storage failure during {operation}: {e}",
                operation=operation,
                path=str(self.path),
            ) from e

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run a write as one ``BEGIN IMMEDIATE`` transaction.

        Commits on success; rolls back on any exception, including domain
        errors raised from inside the block.
        """
        conn = self._get_connection()
        with self._storage_errors(operation):
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    @contextmanager
    def _read(self, operation: str) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        with self._storage_errors(operation):
            yield conn

    def close(self) -> None:
        """Close every connection opened by this index."""
        with self._lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.debug(f"Error closing connection to {self.path.name}: {e}")
            self._connections.clear()
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Index operations
    # -------------------------------------------------------------------------

    def add_to_index(self, content_id: str, storage_key: str) -> IndexEntry:
        """Index an existing stored record under a content id.

        Raises:
            AlreadyExistsError: If the id or the storage key is already indexed.
            NotFoundError: If no stored record has that storage key.
        """
        now = _now_iso()
        with self._transaction("add_to_index") as conn:
            if self._entry_row(conn, content_id) is not None:
                raise AlreadyExistsError(
                    f"Content already indexed: {content_id}",
                    resource_type="content",
                    resource_id=content_id,
                )
            if conn.execute(
                "SELECT 1 FROM content_index WHERE storage_key = ?", (storage_key,)
            ).fetchone():
                raise AlreadyExistsError(
                    f"Storage key already indexed: {storage_key}",
                    resource_type="storage_key",
                    resource_id=storage_key,
                )
            if not conn.execute(
                "SELECT 1 FROM content_records WHERE storage_key = ?", (storage_key,)
            ).fetchone():
                raise NotFoundError(
                    f"No stored record for key: {storage_key}",
                    resource_type="storage_key",
                    resource_id=storage_key,
                )
            conn.execute(
                "INSERT INTO content_index (content_id, storage_key, last_modified) VALUES (?, ?, ?)",
                (content_id, storage_key, now),
            )
        logger.debug(f"Indexed {content_id} -> {storage_key}")
        return IndexEntry(content_id=content_id, storage_key=storage_key, last_modified=now)

    def get_from_index(self, content_id: str) -> IndexEntry:
        with self._read("get_from_index") as conn:
            row = self._entry_row(conn, content_id)
        if row is None:
            raise NotFoundError(
                f"Content not found: {content_id}",
                resource_type="content",
                resource_id=content_id,
            )
        return _entry_from_row(row)

    def get_all_from_index(self) -> list[IndexEntry]:
        """All index entries in insertion order."""
        with self._read("get_all_from_index") as conn:
            rows = conn.execute(
                "SELECT content_id, storage_key, last_modified FROM content_index ORDER BY seq"
            ).fetchall()
        return [_entry_from_row(row) for row in rows]

    def delete_content(self, content_id: str) -> None:
        """Remove a record and its index entry together."""
        with self._transaction("delete_content") as conn:
            row = self._entry_row(conn, content_id)
            if row is None:
                raise NotFoundError(
                    f"Content not found: {content_id}",
                    resource_type="content",
                    resource_id=content_id,
                )
            conn.execute("DELETE FROM content_index WHERE content_id = ?", (content_id,))
            conn.execute("DELETE FROM content_records WHERE storage_key = ?", (row["storage_key"],))
            conn.execute("DELETE FROM manual_dates WHERE content_id = ?", (content_id,))
        logger.info(f"Deleted content {content_id} from {self.path.name}")

    def copy_content(self, old_id: str, new_id: str) -> IndexEntry:
        """Duplicate a stored record under a new id and storage key.

        The source record and its entry are left untouched. The copy gets a
        ``-copy`` slug suffix (``-copy-2``, ``-copy-3``... when taken).

        Raises:
            NotFoundError: If ``old_id`` is not indexed.
            AlreadyExistsError: If ``new_id`` is already indexed.
        """
        now = _now_iso()
        with self._transaction("copy_content") as conn:
            source = self._entry_row(conn, old_id)
            if source is None:
                raise NotFoundError(
                    f"Content not found: {old_id}",
                    resource_type="content",
                    resource_id=old_id,
                )
            if self._entry_row(conn, new_id) is not None:
                raise AlreadyExistsError(
                    f"Content already exists: {new_id}",
                    resource_type="content",
                    resource_id=new_id,
                )

            record = conn.execute(
                "SELECT * FROM content_records WHERE storage_key = ?", (source["storage_key"],)
            ).fetchone()
            new_key = _new_storage_key()
            conn.execute(
                """INSERT INTO content_records
                   (storage_key, slug, title, status, category, frontmatter, body, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    new_key,
                    _copy_slug(conn, record["slug"]),
                    record["title"],
                    record["status"],
                    record["category"],
                    record["frontmatter"],
                    record["body"],
                    now,
                    now,
                ),
            )
            conn.execute(
                "INSERT INTO content_index (content_id, storage_key, last_modified) VALUES (?, ?, ?)",
                (new_id, new_key, now),
            )
        logger.info(f"Copied content {old_id} -> {new_id} in {self.path.name}")
        return IndexEntry(content_id=new_id, storage_key=new_key, last_modified=now)

    def get_stats(self) -> IndexStats:
        with self._read("get_stats") as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count, MAX(last_modified) AS last_modified FROM content_index"
            ).fetchone()
        return IndexStats(count=row["count"], last_modified=row["last_modified"])

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def save_record(
        self,
        content_id: str,
        *,
        slug: str,
        title: str,
        status: str = "draft",
        category: str | None = None,
        frontmatter: dict[str, Any] | None = None,
        body: str = "",
    ) -> IndexEntry:
        """Insert or update a record and its index entry in one transaction.

        Raises:
            ValidationError: If the status is unknown.
            AlreadyExistsError: If another record already uses the slug.
        """
        if status not in CONTENT_STATUSES:
            raise ValidationError(
                f"Invalid status: {status}",
                field="status",
                value=status,
                reasons=[f"status must be one of {', '.join(CONTENT_STATUSES)}"],
            )

        now = _now_iso()
        frontmatter_text = _dump_frontmatter(frontmatter or {})
        try:
            with self._transaction("save_record") as conn:
                row = self._entry_row(conn, content_id)
                if row is not None:
                    storage_key = row["storage_key"]
                    conn.execute(
                        """UPDATE content_records
                           SET slug = ?, title = ?, status = ?, category = ?,
                               frontmatter = ?, body = ?, updated_at = ?
                           WHERE storage_key = ?""",
                        (slug, title, status, category, frontmatter_text, body, now, storage_key),
                    )
                    conn.execute(
                        "UPDATE content_index SET last_modified = ? WHERE content_id = ?",
                        (now, content_id),
                    )
                else:
                    storage_key = _new_storage_key()
                    conn.execute(
                        """INSERT INTO content_records
                           (storage_key, slug, title, status, category, frontmatter, body, created_at, updated_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        (storage_key, slug, title, status, category, frontmatter_text, body, now, now),
                    )
                    conn.execute(
                        "INSERT INTO content_index (content_id, storage_key, last_modified) VALUES (?, ?, ?)",
                        (content_id, storage_key, now),
                    )
        except sqlite3.IntegrityError as e:
            raise AlreadyExistsError(
                f"Slug already in use: {slug}",
                resource_type="slug",
                resource_id=slug,
            ) from e

        logger.debug(f"Saved content {content_id} ({storage_key})")
        return IndexEntry(content_id=content_id, storage_key=storage_key, last_modified=now)

    def get_record(self, content_id: str) -> StoredRecord:
        with self._read("get_record") as conn:
            row = conn.execute(
                """SELECT i.content_id, r.* FROM content_index i
                   JOIN content_records r ON r.storage_key = i.storage_key
                   WHERE i.content_id = ?""",
                (content_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(
                f"Content not found: {content_id}",
                resource_type="content",
                resource_id=content_id,
            )
        return StoredRecord(
            content_id=row["content_id"],
            storage_key=row["storage_key"],
            slug=row["slug"],
            title=row["title"],
            status=row["status"],
            category=row["category"],
            frontmatter=_load_frontmatter(row["frontmatter"]),
            body=row["body"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def verify_integrity(self) -> IntegrityReport:
        """Cross-check index entries against stored records.

        The foreign key keeps them aligned for writes made through this
        class; files edited by other tools can still drift.
        """
        with self._read("verify_integrity") as conn:
            check = conn.execute("PRAGMA quick_check").fetchone()
            dangling = conn.execute(
                """SELECT i.content_id FROM content_index i
                   LEFT JOIN content_records r ON r.storage_key = i.storage_key
                   WHERE r.storage_key IS NULL ORDER BY i.seq"""
            ).fetchall()
            unindexed = conn.execute(
                """SELECT r.storage_key FROM content_records r
                   LEFT JOIN content_index i ON i.storage_key = r.storage_key
                   WHERE i.storage_key IS NULL ORDER BY r.created_at"""
            ).fetchall()

        report = IntegrityReport(
            dangling_entries=[row[0] for row in dangling],
            unindexed_records=[row[0] for row in unindexed],
            sqlite_ok=bool(check) and check[0] == "ok",
        )
        if not report.ok:
            logger.warning(f"Integrity problems in {self.path.name}: {report.to_dict()}")
        return report

    # -------------------------------------------------------------------------
    # Tag catalog
    # -------------------------------------------------------------------------

    def list_tags(self) -> list[TagCatalogEntry]:
        """Every catalogued tag, by name."""
        with self._read("list_tags") as conn:
            rows = conn.execute(
                "SELECT name, created_at, last_used, metadata FROM tag_catalog ORDER BY name ASC"
            ).fetchall()
        return [_tag_from_row(row) for row in rows]

    def upsert_tag(
        self,
        name: str,
        *,
        created_at: str | None = None,
        last_used: str | None = None,
        metadata: Any = None,
    ) -> TagCatalogEntry:
        """Add a tag, or update one that exists.

        On update ``created_at`` is kept, and ``last_used`` / ``metadata``
        only change when a new value is given.

        Raises:
            ValidationError: If the name is empty or the metadata is not JSON.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Tag name is required", field="name", reasons=["name must not be empty"])
        try:
            metadata_text = json.dumps(metadata) if metadata is not None else None
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Tag metadata must be JSON-serializable",
                field="metadata",
                reasons=[str(e)],
            ) from e

        with self._transaction("upsert_tag") as conn:
            conn.execute(
                """INSERT INTO tag_catalog (name, created_at, last_used, metadata)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET
                       last_used = COALESCE(excluded.last_used, tag_catalog.last_used),
                       metadata = COALESCE(excluded.metadata, tag_catalog.metadata)""",
                (name, created_at or _now_iso(), last_used, metadata_text),
            )
            row = conn.execute(
                "SELECT name, created_at, last_used, metadata FROM tag_catalog WHERE name = ?",
                (name,),
            ).fetchone()
        logger.debug(f"Upserted tag {name}")
        return _tag_from_row(row)

    def remove_tag(self, name: str) -> bool:
        """Remove a tag from the catalog. Returns False when it was not there."""
        with self._transaction("remove_tag") as conn:
            removed = conn.execute("DELETE FROM tag_catalog WHERE name = ?", (name,)).rowcount > 0
        if removed:
            logger.debug(f"Removed tag {name}")
        return removed

    # -------------------------------------------------------------------------
    # Manual dates
    # -------------------------------------------------------------------------

    def list_manual_dates(self) -> list[ManualDateEntry]:
        """Every manual date, most recently set first."""
        with self._read("list_manual_dates") as conn:
            rows = conn.execute(
                "SELECT content_id, date, updated_at FROM manual_dates ORDER BY updated_at DESC, content_id"
            ).fetchall()
        return [_manual_date_from_row(row) for row in rows]

    def get_manual_date(self, content_id: str) -> ManualDateEntry | None:
        with self._read("get_manual_date") as conn:
            row = conn.execute(
                "SELECT content_id, date, updated_at FROM manual_dates WHERE content_id = ?",
                (content_id,),
            ).fetchone()
        return _manual_date_from_row(row) if row is not None else None

    def upsert_manual_date(self, content_id: str, value: str) -> ManualDateEntry:
        """Set the manual date of a content id.

        Raises:
            ValidationError: If the id is empty or the value is not an ISO date.
        """
        if not content_id or not content_id.strip():
            raise ValidationError("Content id is required", field="content_id", reasons=["id must not be empty"])
        try:
            if "T" in value:
                datetime.fromisoformat(value)
            else:
                date.fromisoformat(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid date: {value}",
                field="date",
                value=value,
                reasons=["date must be an ISO 8601 date or date-time"],
            ) from e

        now = _now_iso()
        with self._transaction("upsert_manual_date") as conn:
            conn.execute(
                """INSERT INTO manual_dates (content_id, date, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(content_id) DO UPDATE SET
                       date = excluded.date,
                       updated_at = excluded.updated_at""",
                (content_id, value, now),
            )
        logger.debug(f"Manual date for {content_id} set to {value}")
        return ManualDateEntry(content_id=content_id, date=value, updated_at=now)

    def remove_manual_date(self, content_id: str) -> bool:
        """Clear the manual date of a content id. Returns False when none was set."""
        with self._transaction("remove_manual_date") as conn:
            return conn.execute(
                "DELETE FROM manual_dates WHERE content_id = ?", (content_id,)
            ).rowcount > 0

    # -------------------------------------------------------------------------
    # Database metadata
    # -------------------------------------------------------------------------

    def get_metadata(self) -> dict[str, str]:
        with self._read("get_metadata") as conn:
            rows = conn.execute("SELECT key, value FROM database_meta").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def set_metadata(self, key: str, value: str) -> None:
        with self._transaction("set_metadata") as conn:
            conn.execute(
                "INSERT INTO database_meta (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _entry_row(conn: sqlite3.Connection, content_id: str) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT content_id, storage_key, last_modified FROM content_index WHERE content_id = ?",
            (content_id,),
        ).fetchone()


def _entry_from_row(row: sqlite3.Row) -> IndexEntry:
    return IndexEntry(
        content_id=row["content_id"],
        storage_key=row["storage_key"],
        last_modified=row["last_modified"],
    )


def _tag_from_row(row: sqlite3.Row) -> TagCatalogEntry:
    metadata = None
    if row["metadata"] is not None:
        try:
            metadata = json.loads(row["metadata"])
        except json.JSONDecodeError as e:
            logger.warning(f"Tag {row['name']} has unreadable metadata: {e}")
    return TagCatalogEntry(
        name=row["name"],
        created_at=row["created_at"],
        last_used=row["last_used"],
        metadata=metadata,
    )


def _manual_date_from_row(row: sqlite3.Row) -> ManualDateEntry:
    return ManualDateEntry(content_id=row["content_id"], date=row["date"], updated_at=row["updated_at"])


def _copy_slug(conn: sqlite3.Connection, slug: str) -> str:
    """First free ``<slug>-copy`` / ``<slug>-copy-N`` within the slug length limit."""
    attempt = 1
    while True:
        suffix = "-copy" if attempt == 1 else f"-copy-{attempt}"
        candidate = slug[: MAX_SLUG_LENGTH - len(suffix)].rstrip("-") + suffix
        taken = conn.execute(
            "SELECT 1 FROM content_records WHERE slug = ?", (candidate,)
        ).fetchone()
        if not taken:
            return candidate
        attempt += 1
