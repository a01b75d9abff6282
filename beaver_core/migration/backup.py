"""Pre-migration backups of the record store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from beaver_core.storage.sqlite_store import RecordStore

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup-"


def backup_database(store: RecordStore, backup_dir: str) -> str:
    """Copy the live database to ``backup_dir`` with SQLite's online backup API.

    Returns:
        Path of the backup file
    """
    directory = Path(backup_dir)
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = directory / f"{BACKUP_PREFIX}{timestamp}.db"

    target = sqlite3.connect(str(backup_path))
    try:
        store.conn.backup(target)
    finally:
        target.close()

    logger.info(
        f"Backed up {store.db_path} to {backup_path}",
        extra={"event": "backup_created", "backup": str(backup_path)},
    )
    return str(backup_path)


def cleanup_old_backups(backup_dir: str, keep_count: int = 5) -> list[str]:
    """Clean up old backup databases, keeping only the most recent ones.

    Args:
        backup_dir: Directory holding backups
        keep_count: Number of recent backups to keep

    Returns:
        List of backup files that were removed
    """
    directory = Path(backup_dir)
    if not directory.is_dir():
        return []

    # Timestamped names sort chronologically
    backup_files = sorted(
        (p for p in directory.glob(f"{BACKUP_PREFIX}*.db") if p.is_file()),
        key=lambda p: p.name,
        reverse=True,
    )

    removed = []
    for file_path in backup_files[keep_count:]:
        try:
            file_path.unlink()
            removed.append(str(file_path))
            logger.info(f"Removed old backup: {file_path}")
        except OSError as e:
            logger.warning(f"Failed to remove backup {file_path}: {e}")

    return removed
