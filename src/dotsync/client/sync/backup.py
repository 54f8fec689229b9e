"""Append-only backup storage.

Every destructive overwrite of a local file is preceded by a full copy of the
previous content into the backup directory. Backups are never pruned here.

Layout:
    <backup_dir>/<name>.<YYYYMMDD-HHMMSSmmm>.bak
    <backup_dir>/index.jsonl   one BackupRecord per line
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path

from dotsync.client.sync.types import BackupRecord
from dotsync.core.errors import BackupError

logger = logging.getLogger(__name__)

INDEX_FILE = "index.jsonl"


def generate_backup_filename(original_path: Path, now: datetime | None = None) -> str:
    """Generate a backup filename with a millisecond timestamp.

    Format: name.YYYYMMDD-HHMMSSmmm.bak
    """
    now = now or datetime.now()
    timestamp = now.strftime("%Y%m%d-%H%M%S") + f"{now.microsecond // 1000:03d}"
    return f"{original_path.name}.{timestamp}.bak"


class BackupStore:
    """Writes BackupRecords into a backup directory."""

    def __init__(self, backup_dir: Path) -> None:
        self._backup_dir = Path(backup_dir)
        self._lock = threading.Lock()

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def backup(self, path: Path, key: str | None = None) -> BackupRecord:
        """Copy ``path`` into the backup directory.

        Args:
            path: File about to be overwritten (symlinks are followed).
            key: Mapping key, used in error reports.

        Returns:
            The BackupRecord of the written copy.

        Raises:
            BackupError: If the copy or the index entry cannot be written.
        """
        now = datetime.now()
        filename = generate_backup_filename(path, now)
        copied = False
        with self._lock:
            try:
                self._backup_dir.mkdir(parents=True, exist_ok=True)
                dest = self._backup_dir / filename
                if dest.exists():
                    # Extra uniqueness for backups within the same millisecond
                    filename = f"{path.name}.{now.strftime('%Y%m%d-%H%M%S')}-{time.monotonic_ns() % 100000:05d}.bak"
                    dest = self._backup_dir / filename
                record = BackupRecord(
                    filename=filename,
                    timestamp=now.timestamp(),
                    original_path=path,
                )
                shutil.copy2(path, dest)
                copied = True
                self._append_index(record)
            except OSError as e:
                if copied:
                    # Never leave a copy without an index entry
                    dest.unlink(missing_ok=True)
                raise BackupError(key or str(path), f"backup failed: {e}") from e

        logger.info("Created backup: %s -> %s", path, dest)
        return record

    def _append_index(self, record: BackupRecord) -> None:
        entry = {
            "filename": record.filename,
            "timestamp": record.timestamp,
            "original_path": str(record.original_path),
        }
        with open(self._backup_dir / INDEX_FILE, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

    def records(self) -> list[BackupRecord]:
        """List all backup records in creation order."""
        index = self._backup_dir / INDEX_FILE
        if not index.exists():
            return []
        records = []
        with open(index, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                records.append(
                    BackupRecord(
                        filename=data["filename"],
                        timestamp=float(data["timestamp"]),
                        original_path=Path(data["original_path"]),
                    )
                )
        return records
