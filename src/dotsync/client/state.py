"""Local state management for the sync client.

This module provides:
- SyncStateStore: SQLite-based record of last-known synced checksums
- SyncedFile: One recorded mapping

Architecture:
    File states (in-sync, local-newer, conflict, ...) are never stored. They
    are computed on every pass by comparing both sides with the checksum
    recorded here at the last successful sync of each mapping.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class SyncedFile:
    """A mapping that has been synced at least once.

    Attributes:
        profile: Profile the mapping belongs to.
        key: Logical key of the mapping.
        checksum: Content checksum both sides had after the last sync.
        synced_at: Timestamp when the mapping was last synced.
    """

    profile: str
    key: str
    checksum: str
    synced_at: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SyncedFile:
        """Create SyncedFile from database row."""
        return cls(
            profile=row["profile"],
            key=row["key"],
            checksum=row["checksum"],
            synced_at=row["synced_at"],
        )


class SyncStateStore:
    """SQLite-based store of last-known synced checksums."""

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
            CREATE TABLE IF NOT EXISTS synced_files (
                profile TEXT NOT NULL,
                key TEXT NOT NULL,
                checksum TEXT NOT NULL,
                synced_at REAL NOT NULL,
                PRIMARY KEY (profile, key)
            );

            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === File operations ===

    def get_file(self, profile: str, key: str) -> SyncedFile | None:
        """Get the record of one mapping, if any."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM synced_files WHERE profile = ? AND key = ?",
                (profile, key),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return SyncedFile.from_row(row)

    def list_files(self, profile: str) -> list[SyncedFile]:
        """List all records of a profile."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM synced_files WHERE profile = ? ORDER BY key",
                (profile,),
            )
            rows = cursor.fetchall()
        return [SyncedFile.from_row(row) for row in rows]

    def last_known_checksums(self, profile: str) -> dict[str, str]:
        """Get key -> checksum of every recorded mapping of a profile."""
        return {f.key: f.checksum for f in self.list_files(profile)}

    def mark_synced(self, profile: str, key: str, checksum: str) -> None:
        """Record the checksum both sides share after a sync (upsert)."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO synced_files (profile, key, checksum, synced_at)
                VALUES (?, ?, ?, ?)
                """,
                (profile, key, checksum, time.time()),
            )
        logger.debug("Recorded %s/%s at %s", profile, key, checksum[:8])

    def remove_file(self, profile: str, key: str) -> None:
        """Forget a mapping."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM synced_files WHERE profile = ? AND key = ?",
                (profile, key),
            )

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

    def get_last_sync_at(self) -> float | None:
        """Get timestamp of last completed pass."""
        value = self.get_state("last_sync_at")
        return float(value) if value else None

    def set_last_sync_at(self, timestamp: float) -> None:
        """Set timestamp of last completed pass."""
        self.set_state("last_sync_at", str(timestamp))
