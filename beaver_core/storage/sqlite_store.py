"""SQLite record store for the Beaver catalogue.

The record store is the source of truth. Every write commits before any
graph synchronization is attempted.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from threading import local
from typing import Any, Iterator

from beaver_core.models.types import (
    ADRStatus,
    ComponentStatus,
    ImpactLevel,
    ParticipantRole,
    UserRole,
)
from beaver_core.storage.schema import ALL_SCHEMAS
from beaver_core.storage import migrations  # type: ignore

logger = logging.getLogger(__name__)

CATALOG_TABLES = (
    "environments",
    "teams",
    "users",
    "categories",
    "components",
    "component_instances",
    "adrs",
    "adr_participants",
    "adr_component_instances",
    "adr_components",
)


class RecordStoreError(Exception):
    """Base error for record store operations."""


class ConstraintViolationError(RecordStoreError):
    """A write was rejected by a relational constraint."""


class UniqueViolationError(ConstraintViolationError):
    """A unique constraint was violated."""


class ForeignKeyViolationError(ConstraintViolationError):
    """A foreign key constraint was violated."""


class NotFoundError(RecordStoreError):
    """The requested row does not exist."""

    def __init__(self, table: str, record_id: Any):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record not found: {record_id}")


class OwnerInvariantError(RecordStoreError):
    """The change would leave an ADR without an OWNER participant."""


def _translate_integrity_error(error: sqlite3.IntegrityError) -> ConstraintViolationError:
    message = str(error)
    if "UNIQUE" in message:
        return UniqueViolationError(message)
    if "FOREIGN KEY" in message:
        return ForeignKeyViolationError(message)
    return ConstraintViolationError(message)


def _instance_row(row: sqlite3.Row | None) -> dict[str, Any] | None:
    if row is None:
        return None
    data = dict(row)
    if data.get("specs"):
        data["specs"] = json.loads(data["specs"])
    return data


class RecordStore:
    """SQLite-based relational store for the architecture catalogue.

    Handles environments, teams, users, components, instances, ADRs and
    the ADR link tables.
    """

    def __init__(self, db_path: str = "beaver.db", apply_schema: bool = True):
        """
        Args:
            db_path: SQLite database file
            apply_schema: Create tables and run pending migrations on open.
                The migration runner opens with False so its backup step
                runs before the schema changes.
        """
        self.db_path = db_path
        self._local = local()
        if apply_schema:
            self.ensure_schema()

    @property
    def conn(self):
        """Get thread-local SQLite connection.

        Creates a new connection for each thread on first access.
        Connections are reused within the same thread.
        """
        if not hasattr(self._local, 'conn'):
            self._local.conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False  # Allow access from any thread
            )
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn.execute("PRAGMA busy_timeout=30000")  # 30s timeout
        return self._local.conn

    def ensure_schema(self) -> dict[str, Any]:
        """Create tables if they don't exist and run migrations."""
        cursor = self.conn.cursor()
        for schema_sql in ALL_SCHEMAS.values():
            cursor.executescript(schema_sql)
        self.conn.commit()

        return self.run_migrations()

    def run_migrations(self) -> dict[str, Any]:
        """Apply pending database migrations."""
        return self._run_migrations_impl(dry_run=False)

    def preview_migrations(self) -> dict[str, Any]:
        """Preview pending migrations without applying them.

        Returns:
            Dictionary with migration results for each pending migration
        """
        return self._run_migrations_impl(dry_run=True)

    def _run_migrations_impl(self, dry_run: bool = False) -> dict[str, Any]:
        """Run or preview pending database migrations.

        Args:
            dry_run: If True, only report what would happen without applying changes

        Returns:
            Dictionary with results from each migration
        """
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                version TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("SELECT version FROM _migrations ORDER BY version")
        applied = {row[0] for row in cursor.fetchall()}

        results = {}

        for migration in migrations.ALL_MIGRATIONS:
            if migration["version"] in applied:
                continue
            logger.info(
                f"{'[DRY-RUN] ' if dry_run else ''}Running migration {migration['version']}: {migration['name']}",
                extra={
                    "event": "migration_start",
                    "version": migration["version"],
                    "migration_name": migration["name"],
                    "dry_run": dry_run,
                }
            )
            try:
                results[migration["version"]] = migration["upgrade"](self.conn, dry_run=dry_run)

                if not dry_run:
                    cursor.execute(
                        "INSERT INTO _migrations (version) VALUES (?)",
                        (migration["version"],)
                    )
                    self.conn.commit()
                    logger.info(
                        f"Migration {migration['version']} completed",
                        extra={"event": "migration_complete", "version": migration["version"]},
                    )
            except Exception as e:
                if not dry_run:
                    self.conn.rollback()
                    logger.error(
                        f"Migration {migration['version']} failed: {e}",
                        extra={
                            "event": "migration_failed",
                            "version": migration["version"],
                            "error": str(e),
                        }
                    )
                    raise
                results[migration["version"]] = {"error": str(e), "status": "failed"}

        return results

    # ========================
    # Low-level access
    # ========================

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        """Run statements in one transaction, translating constraint errors."""
        try:
            with self.conn:
                cursor = self.conn.cursor()
                if immediate and not self.conn.in_transaction:
                    cursor.execute("BEGIN IMMEDIATE")
                yield cursor
        except sqlite3.IntegrityError as e:
            raise _translate_integrity_error(e) from e

    def execute(self, sql: str, params: tuple | list = ()) -> int:
        """Run a parameterized write statement. Returns affected row count."""
        with self._transaction() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    def query(self, sql: str, params: tuple | list = ()) -> list[dict[str, Any]]:
        """Run a parameterized read statement."""
        cursor = self.conn.cursor()
        cursor.execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def _insert(self, table: str, values: dict[str, Any]) -> int:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._transaction() as cursor:
            cursor.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            return cursor.lastrowid

    def _get(self, table: str, record_id: int) -> dict[str, Any] | None:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def _require(self, table: str, record_id: int) -> dict[str, Any]:
        row = self._get(table, record_id)
        if row is None:
            raise NotFoundError(table, record_id)
        return row

    def _list(self, table: str) -> list[dict[str, Any]]:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT * FROM {table} ORDER BY id")
        return [dict(row) for row in cursor.fetchall()]

    def _update(
        self,
        table: str,
        record_id: int,
        fields: dict[str, Any],
        allowed: tuple[str, ...],
        touch: bool = True,
    ) -> dict[str, Any]:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Cannot update {table} fields: {sorted(unknown)}")

        self._require(table, record_id)
        if not fields:
            return self._require(table, record_id)

        assignments = [f"{column} = ?" for column in fields]
        if touch:
            assignments.append("updated_at = CURRENT_TIMESTAMP")

        with self._transaction() as cursor:
            cursor.execute(
                f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
                (*fields.values(), record_id),
            )
        return self._require(table, record_id)

    def _delete(self, table: str, record_id: int) -> dict[str, Any]:
        """Delete a row and return its pre-delete snapshot."""
        snapshot = self._require(table, record_id)
        with self._transaction() as cursor:
            cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        return snapshot

    def count_rows(self, table: str) -> int:
        if table not in CATALOG_TABLES:
            raise ValueError(f"Unknown table: {table}")
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT COUNT(*) FROM {table}")
        return cursor.fetchone()[0]

    def list_ids(self, table: str) -> set[int]:
        if table not in CATALOG_TABLES:
            raise ValueError(f"Unknown table: {table}")
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT id FROM {table}")
        return {row[0] for row in cursor.fetchall()}

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, 'conn'):
            self._local.conn.close()
            del self._local.conn

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ========================
    # Environments
    # ========================

    def create_environment(self, name: str, description: str | None = None) -> dict[str, Any]:
        env_id = self._insert("environments", {"name": name, "description": description})
        return self._require("environments", env_id)

    def get_environment(self, env_id: int) -> dict[str, Any] | None:
        return self._get("environments", env_id)

    def get_environment_by_name(self, name: str) -> dict[str, Any] | None:
        rows = self.query("SELECT * FROM environments WHERE name = ?", (name,))
        return rows[0] if rows else None

    def list_environments(self) -> list[dict[str, Any]]:
        return self._list("environments")

    def update_environment(self, env_id: int, **fields: Any) -> dict[str, Any]:
        return self._update("environments", env_id, fields, ("name", "description"))

    def delete_environment(self, env_id: int) -> dict[str, Any]:
        return self._delete("environments", env_id)

    def count_instances_in_environment(self, env_id: int) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM component_instances WHERE environment_id = ?", (env_id,)
        )
        return cursor.fetchone()[0]

    # ========================
    # Teams
    # ========================

    def create_team(self, name: str, description: str | None = None) -> dict[str, Any]:
        team_id = self._insert("teams", {"name": name, "description": description})
        return self._require("teams", team_id)

    def get_team(self, team_id: int) -> dict[str, Any] | None:
        return self._get("teams", team_id)

    def get_team_by_name(self, name: str) -> dict[str, Any] | None:
        rows = self.query("SELECT * FROM teams WHERE name = ?", (name,))
        return rows[0] if rows else None

    def list_teams(self) -> list[dict[str, Any]]:
        return self._list("teams")

    def update_team(self, team_id: int, **fields: Any) -> dict[str, Any]:
        return self._update("teams", team_id, fields, ("name", "description"))

    def delete_team(self, team_id: int) -> dict[str, Any]:
        return self._delete("teams", team_id)

    # ========================
    # Users
    # ========================

    def create_user(
        self,
        username: str,
        email: str | None = None,
        role: UserRole | str = UserRole.USER,
    ) -> dict[str, Any]:
        user_id = self._insert(
            "users",
            {"username": username, "email": email, "role": UserRole(role).value},
        )
        return self._require("users", user_id)

    def get_user(self, user_id: int) -> dict[str, Any] | None:
        return self._get("users", user_id)

    def list_users(self) -> list[dict[str, Any]]:
        return self._list("users")

    def get_first_admin(self) -> dict[str, Any] | None:
        rows = self.query("SELECT * FROM users WHERE role = 'ADMIN' ORDER BY id LIMIT 1")
        return rows[0] if rows else None

    def update_user(self, user_id: int, **fields: Any) -> dict[str, Any]:
        if "role" in fields:
            fields["role"] = UserRole(fields["role"]).value
        return self._update("users", user_id, fields, ("username", "email", "role"))

    def delete_user(self, user_id: int) -> dict[str, Any]:
        """Delete a user.

        Participant rows cascade, so a user who is the only OWNER of an
        ADR cannot be deleted.
        """
        snapshot = self._require("users", user_id)
        with self._transaction(immediate=True) as cursor:
            cursor.execute(
                """
                SELECT p.adr_id FROM adr_participants p
                WHERE p.user_id = ? AND p.role = 'OWNER'
                  AND (SELECT COUNT(*) FROM adr_participants o
                       WHERE o.adr_id = p.adr_id AND o.role = 'OWNER') = 1
                """,
                (user_id,),
            )
            sole_owned = [row[0] for row in cursor.fetchall()]
            if sole_owned:
                raise OwnerInvariantError(
                    f"User {user_id} is the only OWNER of ADR(s) {sole_owned}"
                )
            cursor.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return snapshot

    # ========================
    # Categories
    # ========================

    def create_category(self, name: str) -> dict[str, Any]:
        category_id = self._insert("categories", {"name": name})
        return self._require("categories", category_id)

    def list_categories(self) -> list[dict[str, Any]]:
        return self._list("categories")

    # ========================
    # Components
    # ========================

    def create_component(
        self,
        name: str,
        description: str | None = None,
        status: ComponentStatus | str = ComponentStatus.ACTIVE,
        team_id: int | None = None,
        category_id: int | None = None,
    ) -> dict[str, Any]:
        component_id = self._insert(
            "components",
            {
                "name": name,
                "description": description,
                "status": ComponentStatus(status).value,
                "team_id": team_id,
                "category_id": category_id,
            },
        )
        return self._require("components", component_id)

    def get_component(self, component_id: int) -> dict[str, Any] | None:
        return self._get("components", component_id)

    def list_components(self) -> list[dict[str, Any]]:
        return self._list("components")

    def list_components_without_team(self) -> list[dict[str, Any]]:
        return self.query("SELECT * FROM components WHERE team_id IS NULL ORDER BY id")

    def count_components_with_team(self) -> int:
        cursor = self.conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM components WHERE team_id IS NOT NULL")
        return cursor.fetchone()[0]

    def update_component(self, component_id: int, **fields: Any) -> dict[str, Any]:
        if "status" in fields:
            fields["status"] = ComponentStatus(fields["status"]).value
        return self._update(
            "components",
            component_id,
            fields,
            ("name", "description", "status", "team_id", "category_id"),
        )

    def delete_component(self, component_id: int) -> dict[str, Any]:
        """Delete a component. Its instances and ADR links cascade."""
        return self._delete("components", component_id)

    # ========================
    # Component instances
    # ========================

    def create_component_instance(
        self,
        component_id: int,
        environment_id: int,
        hostname: str | None = None,
        specs: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        instance_id = self._insert(
            "component_instances",
            {
                "component_id": component_id,
                "environment_id": environment_id,
                "hostname": hostname,
                "specs": json.dumps(specs) if specs is not None else None,
            },
        )
        return self.get_component_instance(instance_id)

    def get_component_instance(self, instance_id: int) -> dict[str, Any] | None:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM component_instances WHERE id = ?", (instance_id,))
        return _instance_row(cursor.fetchone())

    def get_instance_by_pair(self, component_id: int, environment_id: int) -> dict[str, Any] | None:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM component_instances WHERE component_id = ? AND environment_id = ?",
            (component_id, environment_id),
        )
        return _instance_row(cursor.fetchone())

    def list_component_instances(self, component_id: int | None = None) -> list[dict[str, Any]]:
        cursor = self.conn.cursor()
        if component_id is None:
            cursor.execute("SELECT * FROM component_instances ORDER BY id")
        else:
            cursor.execute(
                "SELECT * FROM component_instances WHERE component_id = ? ORDER BY id",
                (component_id,),
            )
        return [_instance_row(row) for row in cursor.fetchall()]

    def update_component_instance(self, instance_id: int, **fields: Any) -> dict[str, Any]:
        if "specs" in fields and fields["specs"] is not None:
            fields["specs"] = json.dumps(fields["specs"])
        self._update(
            "component_instances",
            instance_id,
            fields,
            ("component_id", "environment_id", "hostname", "specs"),
        )
        return self.get_component_instance(instance_id)

    def delete_component_instance(self, instance_id: int) -> dict[str, Any]:
        snapshot = self.get_component_instance(instance_id)
        if snapshot is None:
            raise NotFoundError("component_instances", instance_id)
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM component_instances WHERE id = ?", (instance_id,))
        return snapshot

    # ========================
    # ADRs
    # ========================

    def create_adr(
        self,
        title: str,
        owner_id: int,
        description: str | None = None,
        status: ADRStatus | str = ADRStatus.DRAFT,
    ) -> dict[str, Any]:
        """Create an ADR together with its OWNER participant.

        Both rows are written in one transaction so the ADR is never
        visible without an owner.
        """
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO adrs (title, description, status) VALUES (?, ?, ?)",
                (title, description, ADRStatus(status).value),
            )
            adr_id = cursor.lastrowid
            cursor.execute(
                "INSERT INTO adr_participants (adr_id, user_id, role) VALUES (?, ?, 'OWNER')",
                (adr_id, owner_id),
            )
        return self._require("adrs", adr_id)

    def get_adr(self, adr_id: int) -> dict[str, Any] | None:
        return self._get("adrs", adr_id)

    def list_adrs(self) -> list[dict[str, Any]]:
        return self._list("adrs")

    def list_adrs_without_participants(self) -> list[dict[str, Any]]:
        return self.query(
            """
            SELECT a.* FROM adrs a
            WHERE NOT EXISTS (SELECT 1 FROM adr_participants p WHERE p.adr_id = a.id)
            ORDER BY a.id
            """
        )

    def update_adr(self, adr_id: int, **fields: Any) -> dict[str, Any]:
        if "status" in fields:
            fields["status"] = ADRStatus(fields["status"]).value
        return self._update("adrs", adr_id, fields, ("title", "description", "status"))

    def delete_adr(self, adr_id: int) -> dict[str, Any]:
        """Delete an ADR. Participants and impact rows cascade."""
        return self._delete("adrs", adr_id)

    # ========================
    # ADR participants
    # ========================

    def add_participant(
        self,
        adr_id: int,
        user_id: int,
        role: ParticipantRole | str,
    ) -> dict[str, Any]:
        participant_id = self._insert(
            "adr_participants",
            {"adr_id": adr_id, "user_id": user_id, "role": ParticipantRole(role).value},
        )
        return self._require("adr_participants", participant_id)

    def get_participant(self, participant_id: int) -> dict[str, Any] | None:
        return self._get("adr_participants", participant_id)

    def get_participant_by_pair(self, adr_id: int, user_id: int) -> dict[str, Any] | None:
        rows = self.query(
            "SELECT * FROM adr_participants WHERE adr_id = ? AND user_id = ?",
            (adr_id, user_id),
        )
        return rows[0] if rows else None

    def list_participants(self, adr_id: int | None = None) -> list[dict[str, Any]]:
        if adr_id is None:
            return self._list("adr_participants")
        return self.query(
            "SELECT * FROM adr_participants WHERE adr_id = ? ORDER BY id", (adr_id,)
        )

    def count_owners(self, adr_id: int) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM adr_participants WHERE adr_id = ? AND role = 'OWNER'",
            (adr_id,),
        )
        return cursor.fetchone()[0]

    def _check_not_last_owner(self, cursor: sqlite3.Cursor, participant: dict[str, Any]) -> None:
        if participant["role"] != ParticipantRole.OWNER.value:
            return
        cursor.execute(
            "SELECT COUNT(*) FROM adr_participants WHERE adr_id = ? AND role = 'OWNER'",
            (participant["adr_id"],),
        )
        if cursor.fetchone()[0] <= 1:
            raise OwnerInvariantError(
                f"ADR {participant['adr_id']} must keep at least one OWNER"
            )

    def update_participant_role(
        self,
        participant_id: int,
        role: ParticipantRole | str,
    ) -> dict[str, Any]:
        """Change a participant's role, refusing to demote the last OWNER."""
        new_role = ParticipantRole(role).value
        participant = self._require("adr_participants", participant_id)

        with self._transaction(immediate=True) as cursor:
            if new_role != ParticipantRole.OWNER.value:
                self._check_not_last_owner(cursor, participant)
            cursor.execute(
                "UPDATE adr_participants SET role = ? WHERE id = ?",
                (new_role, participant_id),
            )
        return self._require("adr_participants", participant_id)

    def delete_participant(self, participant_id: int) -> dict[str, Any]:
        """Remove a participant, refusing to remove the last OWNER."""
        participant = self._require("adr_participants", participant_id)

        with self._transaction(immediate=True) as cursor:
            self._check_not_last_owner(cursor, participant)
            cursor.execute("DELETE FROM adr_participants WHERE id = ?", (participant_id,))
        return participant

    # ========================
    # ADR component instances
    # ========================

    _ADR_INSTANCE_SELECT = """
        SELECT aci.*, ci.component_id AS component_id
        FROM adr_component_instances aci
        JOIN component_instances ci ON ci.id = aci.instance_id
    """

    def create_adr_component_instance(
        self,
        adr_id: int,
        instance_id: int,
        impact_level: ImpactLevel | str = ImpactLevel.MEDIUM,
        notes: str | None = None,
    ) -> dict[str, Any]:
        row_id = self._insert(
            "adr_component_instances",
            {
                "adr_id": adr_id,
                "instance_id": instance_id,
                "impact_level": ImpactLevel(impact_level).value,
                "notes": notes,
            },
        )
        return self.get_adr_component_instance(row_id)

    def get_adr_component_instance(self, row_id: int) -> dict[str, Any] | None:
        rows = self.query(self._ADR_INSTANCE_SELECT + " WHERE aci.id = ?", (row_id,))
        return rows[0] if rows else None

    def list_adr_component_instances(self, adr_id: int | None = None) -> list[dict[str, Any]]:
        """List ADR instance impacts, each row carrying its instance's component_id."""
        if adr_id is None:
            return self.query(self._ADR_INSTANCE_SELECT + " ORDER BY aci.id")
        return self.query(
            self._ADR_INSTANCE_SELECT + " WHERE aci.adr_id = ? ORDER BY aci.id", (adr_id,)
        )

    def count_adr_instances_for_component(self, adr_id: int, component_id: int) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT COUNT(*) FROM adr_component_instances aci
            JOIN component_instances ci ON ci.id = aci.instance_id
            WHERE aci.adr_id = ? AND ci.component_id = ?
            """,
            (adr_id, component_id),
        )
        return cursor.fetchone()[0]

    def update_adr_component_instance(self, row_id: int, **fields: Any) -> dict[str, Any]:
        if "impact_level" in fields:
            fields["impact_level"] = ImpactLevel(fields["impact_level"]).value
        self._update(
            "adr_component_instances", row_id, fields, ("impact_level", "notes"), touch=False
        )
        return self.get_adr_component_instance(row_id)

    def delete_adr_component_instance(self, row_id: int) -> dict[str, Any]:
        snapshot = self.get_adr_component_instance(row_id)
        if snapshot is None:
            raise NotFoundError("adr_component_instances", row_id)
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM adr_component_instances WHERE id = ?", (row_id,))
        return snapshot

    # ========================
    # ADR components
    # ========================

    def ensure_adr_component(self, adr_id: int, component_id: int) -> tuple[dict[str, Any], bool]:
        """Insert the ADRComponent row for a pair unless it already exists.

        Returns:
            (row, created) where created is False if the row already existed
        """
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO adr_components (adr_id, component_id) VALUES (?, ?)
                ON CONFLICT(adr_id, component_id) DO NOTHING
                """,
                (adr_id, component_id),
            )
            created = cursor.rowcount > 0
        return self.get_adr_component_by_pair(adr_id, component_id), created

    def get_adr_component(self, row_id: int) -> dict[str, Any] | None:
        return self._get("adr_components", row_id)

    def get_adr_component_by_pair(self, adr_id: int, component_id: int) -> dict[str, Any] | None:
        rows = self.query(
            "SELECT * FROM adr_components WHERE adr_id = ? AND component_id = ?",
            (adr_id, component_id),
        )
        return rows[0] if rows else None

    def list_adr_components(self, adr_id: int | None = None) -> list[dict[str, Any]]:
        if adr_id is None:
            return self._list("adr_components")
        return self.query("SELECT * FROM adr_components WHERE adr_id = ? ORDER BY id", (adr_id,))

    def list_adr_components_without_instances(self) -> list[dict[str, Any]]:
        return self.query(
            """
            SELECT ac.* FROM adr_components ac
            WHERE NOT EXISTS (
                SELECT 1 FROM adr_component_instances aci
                JOIN component_instances ci ON ci.id = aci.instance_id
                WHERE aci.adr_id = ac.adr_id AND ci.component_id = ac.component_id
            )
            ORDER BY ac.id
            """
        )

    def delete_adr_component(self, row_id: int) -> dict[str, Any]:
        return self._delete("adr_components", row_id)
