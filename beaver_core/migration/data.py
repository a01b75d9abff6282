"""Relational data steps of the v2 migration.

Every function here is idempotent: re-running the migration finds the
defaults and links already in place and writes nothing.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from beaver_core.models.types import ImpactLevel, ParticipantRole
from beaver_core.storage.sqlite_store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENTS = [
    ("development", "Development environment"),
    ("homologation", "Homologation (staging) environment"),
    ("production", "Production environment"),
]

DEFAULT_TEAMS = [
    ("Network", "Network infrastructure team"),
    ("Operations", "Operations team"),
    ("Platform", "Platform engineering team"),
]

# Components without a team are handed to this one.
FALLBACK_TEAM = "Platform"

PRODUCTION_ENVIRONMENT = "production"


class MigrationError(Exception):
    """A migration step could not complete."""


def instance_hostname(component_name: str, environment_name: str) -> str:
    """Default hostname: slugged component name plus a 3-letter environment suffix."""
    slug = re.sub(r"[^a-z0-9]", "-", component_name.lower())
    return f"{slug}-{environment_name[:3]}"


def instance_specs(environment_name: str) -> dict[str, Any]:
    production = environment_name == PRODUCTION_ENVIRONMENT
    return {
        "version": "1.0",
        "resources": {
            "cpu": "2" if production else "1",
            "memory": "4Gi" if production else "2Gi",
        },
        "notes": f"Auto-generated instance for {environment_name}",
    }


# ========================
# Data migration
# ========================


def seed_defaults(store: RecordStore) -> dict[str, int]:
    """Create the default environments and teams that are missing."""
    created = {"environments": 0, "teams": 0}

    for name, description in DEFAULT_ENVIRONMENTS:
        if store.get_environment_by_name(name) is None:
            store.create_environment(name, description)
            created["environments"] += 1

    for name, description in DEFAULT_TEAMS:
        if store.get_team_by_name(name) is None:
            store.create_team(name, description)
            created["teams"] += 1

    return created


def create_default_instances(store: RecordStore) -> int:
    """Give every component an instance in every environment it lacks one in."""
    environments = store.list_environments()
    created = 0

    for component in store.list_components():
        for environment in environments:
            if store.get_instance_by_pair(component["id"], environment["id"]) is not None:
                continue
            store.create_component_instance(
                component["id"],
                environment["id"],
                hostname=instance_hostname(component["name"], environment["name"]),
                specs=instance_specs(environment["name"]),
            )
            created += 1

    return created


def migrate_legacy_owners(store: RecordStore) -> int:
    """Turn the legacy ``adrs.owner_id`` column into OWNER participants."""
    return store.execute(
        """
        INSERT INTO adr_participants (adr_id, user_id, role)
        SELECT id, owner_id, 'OWNER' FROM adrs WHERE owner_id IS NOT NULL
        ON CONFLICT(adr_id, user_id) DO NOTHING
        """
    )


def run_data_migration(store: RecordStore) -> dict[str, Any]:
    result: dict[str, Any] = seed_defaults(store)
    result["instances"] = create_default_instances(store)
    result["owners"] = migrate_legacy_owners(store)

    logger.info(
        "Data migration completed",
        extra={"event": "data_migration_complete", **result},
    )
    return result


# ========================
# Reference repair
# ========================


def assign_fallback_team(store: RecordStore) -> int:
    """Assign components with no team to the fallback team."""
    orphaned = store.list_components_without_team()
    if not orphaned:
        return 0

    team = store.get_team_by_name(FALLBACK_TEAM) or store.create_team(FALLBACK_TEAM)
    for component in orphaned:
        store.update_component(component["id"], team_id=team["id"])
    return len(orphaned)


def assign_default_owners(store: RecordStore) -> int:
    """Give ADRs that have no participants an ADMIN user as OWNER.

    Raises:
        MigrationError: If such ADRs exist but there is no ADMIN user
    """
    unowned = store.list_adrs_without_participants()
    if not unowned:
        return 0

    admin = store.get_first_admin()
    if admin is None:
        raise MigrationError(
            f"{len(unowned)} ADR(s) have no participants and no ADMIN user exists"
        )

    for adr in unowned:
        store.add_participant(adr["id"], admin["id"], ParticipantRole.OWNER)
    return len(unowned)


def link_adr_components_to_instances(store: RecordStore) -> int:
    """Expand ADR→component links that have no instance impacts.

    Every instance of the component gets a MEDIUM impact row.
    """
    created = 0
    for link in store.list_adr_components_without_instances():
        for instance in store.list_component_instances(link["component_id"]):
            created += store.execute(
                """
                INSERT INTO adr_component_instances (adr_id, instance_id, impact_level)
                VALUES (?, ?, ?)
                ON CONFLICT(adr_id, instance_id) DO NOTHING
                """,
                (link["adr_id"], instance["id"], ImpactLevel.MEDIUM.value),
            )
    return created


def update_references(store: RecordStore) -> dict[str, int]:
    result = {
        "teams_assigned": assign_fallback_team(store),
        "owners_assigned": assign_default_owners(store),
        "impacts_linked": link_adr_components_to_instances(store),
    }
    logger.info(
        "Reference update completed",
        extra={"event": "references_updated", **result},
    )
    return result
