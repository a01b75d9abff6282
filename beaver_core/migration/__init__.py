"""Record store migration to the environment/team/instance model."""

from beaver_core.migration.runner import MigrationReport, MigrationRunner

__all__ = ["MigrationReport", "MigrationRunner"]
