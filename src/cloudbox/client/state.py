"""Local state management for the storage client.

This module provides:
- LocalState: SQLite-based store for the delta cursor, the remote index
  built from delta pages, and the resumption points of chunked uploads
- UploadSession: A persisted resumption point

Architecture:
    The delta fetcher and the upload orchestrator keep no state between
    calls. This store is where a caller keeps it: apply_delta_page() writes
    the entries and the new cursor in one transaction, and upload sessions
    are saved after every acknowledged chunk.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from cloudbox.client.models import ChunkedUploadState, Deleted, DeltaPage, Metadata

logger = logging.getLogger(__name__)


def _encode_metadata(metadata: Metadata) -> str:
    def default(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        raise TypeError(f"Cannot encode {type(value).__name__}")

    return json.dumps(asdict(metadata), default=default)


def _decode_metadata(raw: str) -> Metadata:
    data = json.loads(raw)

    def build(item: dict[str, Any]) -> Metadata:
        for key in ("modified", "client_mtime"):
            if item.get(key):
                item[key] = datetime.fromisoformat(item[key])
        item["contents"] = [build(c) for c in item.get("contents", [])]
        return Metadata(**item)

    return build(data)


@dataclass
class UploadSession:
    """Persisted resumption point of a chunked upload.

    Attributes:
        key: Caller-chosen identity (e.g. "local path -> remote path").
        state: Last state acknowledged by the server.
        source_size: Size of the source when the session was started.
        updated_at: Timestamp of the last save.
    """

    key: str
    state: ChunkedUploadState
    source_size: int | None
    updated_at: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> UploadSession:
        """Create UploadSession from database row."""
        return cls(
            key=row["key"],
            state=ChunkedUploadState(upload_id=row["upload_id"], offset=row["offset"]),
            source_size=row["source_size"],
            updated_at=row["updated_at"],
        )


class LocalState:
    """SQLite-based local state for the storage client."""

    def __init__(self, db_path: Path) -> None:
        """Initialize local state database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            -- Remote index built from delta pages (lower-cased paths)
            CREATE TABLE IF NOT EXISTS entries (
                path TEXT PRIMARY KEY,
                metadata TEXT NOT NULL
            );

            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            -- Resumption points of chunked uploads
            CREATE TABLE IF NOT EXISTS upload_sessions (
                key TEXT PRIMARY KEY,
                upload_id TEXT NOT NULL,
                offset INTEGER NOT NULL,
                source_size INTEGER,
                updated_at REAL NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalState:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_cursor(self) -> str:
        """Get the last delta cursor (empty before the first sync)."""
        return self.get_state("delta_cursor") or ""

    def set_cursor(self, cursor: str) -> None:
        """Set the last delta cursor."""
        self.set_state("delta_cursor", cursor)

    # === Remote index ===

    def get_entry(self, path: str) -> Metadata | None:
        """Get indexed metadata by path (case-insensitive)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT metadata FROM entries WHERE path = ?",
                (path.lower(),),
            ).fetchone()
        if row is None:
            return None
        return _decode_metadata(row["metadata"])

    def list_entries(self, prefix: str = "") -> list[Metadata]:
        """List indexed entries, optionally below a folder."""
        folder = prefix.lower().rstrip("/")
        with self._lock:
            if folder:
                rows = self._conn.execute(
                    "SELECT metadata FROM entries WHERE path = ? OR path LIKE ? "
                    "ESCAPE '\\' ORDER BY path",
                    (folder, _like_prefix(folder)),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT metadata FROM entries ORDER BY path"
                ).fetchall()
        return [_decode_metadata(row["metadata"]) for row in rows]

    def count_entries(self) -> int:
        """Number of indexed entries."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM entries").fetchone()
        return int(row["n"])

    def apply_delta_page(self, page: DeltaPage) -> None:
        """Apply a delta page and store its cursor in one transaction.

        A reset page clears the index first. Entries are applied in order;
        a deletion also removes everything below the deleted path.
        """
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                if page.reset:
                    logger.info("Delta reset: clearing local index")
                    self._conn.execute("DELETE FROM entries")
                for entry in page.entries:
                    key = entry.path.lower()
                    if isinstance(entry.change, Deleted):
                        self._conn.execute(
                            "DELETE FROM entries WHERE path = ? OR path LIKE ? ESCAPE '\\'",
                            (key, _like_prefix(key)),
                        )
                    else:
                        self._conn.execute(
                            "INSERT OR REPLACE INTO entries (path, metadata) VALUES (?, ?)",
                            (key, _encode_metadata(entry.change.metadata)),
                        )
                self._conn.execute(
                    "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                    ("delta_cursor", page.cursor),
                )
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise

    # === Upload sessions ===

    def save_upload_session(
        self,
        key: str,
        state: ChunkedUploadState,
        source_size: int | None = None,
    ) -> None:
        """Save the last acknowledged state of an upload (upsert)."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO upload_sessions (
                    key, upload_id, offset, source_size, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (key, state.upload_id, state.offset, source_size, time.time()),
            )

    def get_upload_session(self, key: str) -> UploadSession | None:
        """Get the saved resumption point of an upload."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM upload_sessions WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return UploadSession.from_row(row)

    def clear_upload_session(self, key: str) -> None:
        """Forget an upload (after commit or abandonment)."""
        with self._lock:
            self._conn.execute("DELETE FROM upload_sessions WHERE key = ?", (key,))


def _like_prefix(folder: str) -> str:
    """LIKE pattern matching every path below folder."""
    escaped = folder.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.rstrip("/") + "/%"
