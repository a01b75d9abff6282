"""Migration 001: Bring pre-v2 databases up to the current column set.

Databases created before teams and instances existed are missing the
``components.team_id``, ``components.status`` and ``adrs.owner_id``
columns. ``CREATE TABLE IF NOT EXISTS`` leaves such tables untouched,
so the columns are added here. Fresh databases already have them and
the migration is a no-op.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Migration metadata
version = "001"
name = "legacy_columns"
description = "Add team, status and legacy owner columns to pre-v2 tables"

# (table, column, column definition)
_REQUIRED_COLUMNS = [
    ("components", "team_id", "INTEGER REFERENCES teams(id) ON DELETE SET NULL"),
    ("components", "status", "TEXT NOT NULL DEFAULT 'ACTIVE'"),
    ("adrs", "owner_id", "INTEGER REFERENCES users(id) ON DELETE SET NULL"),
]


def _existing_columns(cursor: Any, table: str) -> set[str]:
    cursor.execute(f"PRAGMA table_info({table})")
    return {row[1] for row in cursor.fetchall()}


def upgrade(conn: Any, dry_run: bool = False) -> dict[str, list[str]]:
    """Add missing columns.

    Args:
        conn: SQLite connection object
        dry_run: If True, only report which columns would be added

    Returns:
        Dictionary with the list of columns added (or to be added)
    """
    cursor = conn.cursor()
    added: list[str] = []

    for table, column, definition in _REQUIRED_COLUMNS:
        if column in _existing_columns(cursor, table):
            continue
        added.append(f"{table}.{column}")
        if not dry_run:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    if not dry_run:
        conn.commit()

    if added:
        logger.info(
            f"{'[DRY-RUN] ' if dry_run else ''}Migration {version}: added {', '.join(added)}",
            extra={"migration": version, "dry_run": dry_run, "columns": added},
        )

    return {"columns": added}


migration_001_legacy_columns = {
    "version": version,
    "name": name,
    "description": description,
    "upgrade": upgrade,
}
