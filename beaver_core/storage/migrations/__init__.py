"""Database migrations for the Beaver record store."""

from .migration_001_legacy_columns import migration_001_legacy_columns

ALL_MIGRATIONS = [
    migration_001_legacy_columns,
]

__all__ = ["ALL_MIGRATIONS"]
