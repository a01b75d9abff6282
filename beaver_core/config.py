"""
Beaver Configuration
====================

Settings for the record store, the graph store and the sync engine.

Environment Variables:
    BEAVER_DB_PATH: SQLite database path (default: beaver.db)
    BEAVER_NEO4J_URI: Neo4j bolt URI (default: bolt://localhost:7687)
    BEAVER_NEO4J_USER: Neo4j user (default: neo4j)
    BEAVER_NEO4J_PASSWORD: Neo4j password
    BEAVER_NEO4J_DATABASE: Neo4j database name (default: neo4j)
    BEAVER_GRAPH_TIMEOUT: Per-transaction graph timeout in seconds (default: 30)
    BEAVER_SYNC_POLICY: best_effort|strict (default: best_effort)
    BEAVER_DETECT_STALE: Report graph data with no relational row (default: true)
    BEAVER_BACKUP_DIR: Directory for pre-migration backups (default: backups)
    BEAVER_BACKUP_KEEP: Number of backups to retain (default: 5)
"""

import os
from dataclasses import dataclass

from beaver_core.models.types import SyncPolicy

DEFAULT_DB_PATH = "beaver.db"
DEFAULT_NEO4J_URI = "bolt://localhost:7687"
DEFAULT_NEO4J_USER = "neo4j"
DEFAULT_NEO4J_DATABASE = "neo4j"
DEFAULT_GRAPH_TIMEOUT = 30.0
DEFAULT_BACKUP_DIR = "backups"
DEFAULT_BACKUP_KEEP = 5

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class BeaverConfig:
    """Configuration for the dual-store engine.

    Attributes:
        db_path: Path of the SQLite record store
        neo4j_uri: Bolt URI of the graph store
        neo4j_user: Graph store user
        neo4j_password: Graph store password
        neo4j_database: Graph database name
        graph_timeout: Timeout in seconds for each graph transaction
        sync_policy: Behaviour of targeted sync on graph failure
        detect_stale: Whether validation reports graph data with no relational row
        backup_dir: Where the migration runner writes backups
        backup_keep: How many backups the migration runner keeps
    """

    db_path: str = DEFAULT_DB_PATH
    neo4j_uri: str = DEFAULT_NEO4J_URI
    neo4j_user: str = DEFAULT_NEO4J_USER
    neo4j_password: str = ""
    neo4j_database: str = DEFAULT_NEO4J_DATABASE
    graph_timeout: float = DEFAULT_GRAPH_TIMEOUT
    sync_policy: SyncPolicy = SyncPolicy.BEST_EFFORT
    detect_stale: bool = True
    backup_dir: str = DEFAULT_BACKUP_DIR
    backup_keep: int = DEFAULT_BACKUP_KEEP

    @classmethod
    def from_env(cls) -> "BeaverConfig":
        """Create configuration from environment variables.

        Returns:
            BeaverConfig instance with values from environment
        """
        policy_str = os.environ.get("BEAVER_SYNC_POLICY", SyncPolicy.BEST_EFFORT.value).lower()

        return cls(
            db_path=os.environ.get("BEAVER_DB_PATH", DEFAULT_DB_PATH),
            neo4j_uri=os.environ.get("BEAVER_NEO4J_URI", DEFAULT_NEO4J_URI),
            neo4j_user=os.environ.get("BEAVER_NEO4J_USER", DEFAULT_NEO4J_USER),
            neo4j_password=os.environ.get("BEAVER_NEO4J_PASSWORD", ""),
            neo4j_database=os.environ.get("BEAVER_NEO4J_DATABASE", DEFAULT_NEO4J_DATABASE),
            graph_timeout=float(os.environ.get("BEAVER_GRAPH_TIMEOUT", DEFAULT_GRAPH_TIMEOUT)),
            sync_policy=SyncPolicy(policy_str),
            detect_stale=os.environ.get("BEAVER_DETECT_STALE", "true").lower() in _TRUE_VALUES,
            backup_dir=os.environ.get("BEAVER_BACKUP_DIR", DEFAULT_BACKUP_DIR),
            backup_keep=int(os.environ.get("BEAVER_BACKUP_KEEP", DEFAULT_BACKUP_KEEP)),
        )

    def is_valid(self) -> bool:
        """Check if configuration has minimum required values.

        Returns:
            True if configuration is valid for operation
        """
        return not self.get_validation_errors()

    def get_validation_errors(self) -> list[str]:
        """Get list of validation errors.

        Returns:
            List of validation error messages
        """
        errors = []

        if not self.db_path:
            errors.append("BEAVER_DB_PATH must not be empty")
        if not self.neo4j_uri:
            errors.append("BEAVER_NEO4J_URI must not be empty")
        if self.graph_timeout <= 0:
            errors.append("BEAVER_GRAPH_TIMEOUT must be positive")
        if self.backup_keep < 1:
            errors.append("BEAVER_BACKUP_KEEP must be at least 1")

        return errors
