"""Catalogue mutations: relational write first, then targeted graph sync.

Every mutation commits to the record store before the graph is touched.
Relational failures raise; graph failures surface in the returned
:class:`MutationResult` according to the sync policy.
"""

from __future__ import annotations

import logging
from typing import Any

from beaver_core.models.types import (
    ADRStatus,
    ComponentStatus,
    EntityType,
    ImpactLevel,
    MutationResult,
    ParticipantRole,
    SyncResult,
    UserRole,
)
from beaver_core.storage.sqlite_store import NotFoundError, RecordStore, UniqueViolationError
from beaver_core.sync.hooks import SyncHooks

logger = logging.getLogger(__name__)


class CatalogRuleError(Exception):
    """A mutation was rejected by a catalogue business rule."""


class CatalogService:
    """Caller contract for catalogue writes."""

    def __init__(self, store: RecordStore, hooks: SyncHooks) -> None:
        self.store = store
        self.hooks = hooks

    def _created(self, entity_type: EntityType, row: dict[str, Any]) -> MutationResult:
        return MutationResult(entity=row, sync=self.hooks.on_entity_created(entity_type, row["id"]))

    def _updated(
        self,
        entity_type: EntityType,
        row: dict[str, Any],
        previous: dict[str, Any],
    ) -> MutationResult:
        return MutationResult(
            entity=row,
            sync=self.hooks.on_entity_updated(entity_type, row["id"], previous=previous),
        )

    def _deleted(self, entity_type: EntityType, snapshot: dict[str, Any]) -> MutationResult:
        return MutationResult(
            entity=snapshot,
            sync=self.hooks.on_entity_deleted(entity_type, snapshot["id"], snapshot),
        )

    @staticmethod
    def _require(row: dict[str, Any] | None, table: str, record_id: int) -> dict[str, Any]:
        if row is None:
            raise NotFoundError(table, record_id)
        return row

    # ========================
    # Environments
    # ========================

    def create_environment(self, name: str, description: str | None = None) -> MutationResult:
        row = self.store.create_environment(name, description)
        return self._created(EntityType.ENVIRONMENT, row)

    def update_environment(self, env_id: int, **fields: Any) -> MutationResult:
        previous = self._require(self.store.get_environment(env_id), "environments", env_id)
        row = self.store.update_environment(env_id, **fields)
        return self._updated(EntityType.ENVIRONMENT, row, previous)

    def delete_environment(self, env_id: int) -> MutationResult:
        self._require(self.store.get_environment(env_id), "environments", env_id)
        in_use = self.store.count_instances_in_environment(env_id)
        if in_use:
            raise CatalogRuleError(
                f"Environment {env_id} still has {in_use} component instance(s)"
            )
        snapshot = self.store.delete_environment(env_id)
        return self._deleted(EntityType.ENVIRONMENT, snapshot)

    # ========================
    # Teams
    # ========================

    def create_team(self, name: str, description: str | None = None) -> MutationResult:
        row = self.store.create_team(name, description)
        return self._created(EntityType.TEAM, row)

    def update_team(self, team_id: int, **fields: Any) -> MutationResult:
        previous = self._require(self.store.get_team(team_id), "teams", team_id)
        row = self.store.update_team(team_id, **fields)
        return self._updated(EntityType.TEAM, row, previous)

    def delete_team(self, team_id: int) -> MutationResult:
        """Delete a team. Its components keep existing with no team."""
        snapshot = self.store.delete_team(team_id)
        return self._deleted(EntityType.TEAM, snapshot)

    # ========================
    # Users
    # ========================

    def create_user(
        self,
        username: str,
        email: str | None = None,
        role: UserRole | str = UserRole.USER,
    ) -> MutationResult:
        row = self.store.create_user(username, email, role)
        return self._created(EntityType.USER, row)

    def update_user(self, user_id: int, **fields: Any) -> MutationResult:
        previous = self._require(self.store.get_user(user_id), "users", user_id)
        row = self.store.update_user(user_id, **fields)
        return self._updated(EntityType.USER, row, previous)

    def delete_user(self, user_id: int) -> MutationResult:
        snapshot = self.store.delete_user(user_id)
        return self._deleted(EntityType.USER, snapshot)

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
    ) -> MutationResult:
        if team_id is not None:
            self._require(self.store.get_team(team_id), "teams", team_id)
        row = self.store.create_component(name, description, status, team_id, category_id)
        return self._created(EntityType.COMPONENT, row)

    def update_component(self, component_id: int, **fields: Any) -> MutationResult:
        previous = self._require(self.store.get_component(component_id), "components", component_id)
        if fields.get("team_id") is not None:
            self._require(self.store.get_team(fields["team_id"]), "teams", fields["team_id"])
        row = self.store.update_component(component_id, **fields)
        return self._updated(EntityType.COMPONENT, row, previous)

    def delete_component(self, component_id: int) -> MutationResult:
        """Delete a component and, by cascade, its instances.

        The instances are captured before the delete so their graph nodes
        are removed along with the component's.
        """
        self._require(self.store.get_component(component_id), "components", component_id)
        instances = self.store.list_component_instances(component_id)
        snapshot = self.store.delete_component(component_id)

        results = [self.hooks.on_entity_deleted(EntityType.COMPONENT, component_id, snapshot)]
        for instance in instances:
            results.append(
                self.hooks.on_entity_deleted(EntityType.COMPONENT_INSTANCE, instance["id"], instance)
            )
        return MutationResult(entity=snapshot, sync=SyncResult.combine(results))

    # ========================
    # Component instances
    # ========================

    def create_component_instance(
        self,
        component_id: int,
        environment_id: int,
        hostname: str | None = None,
        specs: dict[str, Any] | None = None,
    ) -> MutationResult:
        self._require(self.store.get_component(component_id), "components", component_id)
        self._require(self.store.get_environment(environment_id), "environments", environment_id)
        if self.store.get_instance_by_pair(component_id, environment_id) is not None:
            raise UniqueViolationError(
                f"Component {component_id} already has an instance in environment {environment_id}"
            )
        row = self.store.create_component_instance(component_id, environment_id, hostname, specs)
        return self._created(EntityType.COMPONENT_INSTANCE, row)

    def update_component_instance(self, instance_id: int, **fields: Any) -> MutationResult:
        previous = self._require(
            self.store.get_component_instance(instance_id), "component_instances", instance_id
        )
        if fields.get("component_id") is not None:
            self._require(self.store.get_component(fields["component_id"]), "components", fields["component_id"])
        if fields.get("environment_id") is not None:
            self._require(
                self.store.get_environment(fields["environment_id"]), "environments", fields["environment_id"]
            )
        row = self.store.update_component_instance(instance_id, **fields)
        return self._updated(EntityType.COMPONENT_INSTANCE, row, previous)

    def delete_component_instance(self, instance_id: int) -> MutationResult:
        snapshot = self.store.delete_component_instance(instance_id)
        return self._deleted(EntityType.COMPONENT_INSTANCE, snapshot)

    # ========================
    # ADRs
    # ========================

    def create_adr(
        self,
        title: str,
        owner_id: int,
        description: str | None = None,
        status: ADRStatus | str = ADRStatus.DRAFT,
    ) -> MutationResult:
        """Create an ADR owned by ``owner_id``.

        The OWNER participant is written with the ADR, and both graph
        counterparts are synced.
        """
        self._require(self.store.get_user(owner_id), "users", owner_id)
        row = self.store.create_adr(title, owner_id, description, status)
        owner = self.store.get_participant_by_pair(row["id"], owner_id)

        results = [
            self.hooks.on_entity_created(EntityType.ADR, row["id"]),
            self.hooks.on_entity_created(EntityType.ADR_PARTICIPANT, owner["id"]),
        ]
        return MutationResult(entity=row, sync=SyncResult.combine(results))

    def update_adr(self, adr_id: int, **fields: Any) -> MutationResult:
        previous = self._require(self.store.get_adr(adr_id), "adrs", adr_id)
        row = self.store.update_adr(adr_id, **fields)
        return self._updated(EntityType.ADR, row, previous)

    def delete_adr(self, adr_id: int) -> MutationResult:
        snapshot = self.store.delete_adr(adr_id)
        return self._deleted(EntityType.ADR, snapshot)

    # ========================
    # ADR participants
    # ========================

    def add_participant(self, adr_id: int, user_id: int, role: ParticipantRole | str) -> MutationResult:
        self._require(self.store.get_adr(adr_id), "adrs", adr_id)
        self._require(self.store.get_user(user_id), "users", user_id)
        if self.store.get_participant_by_pair(adr_id, user_id) is not None:
            raise UniqueViolationError(f"User {user_id} already participates in ADR {adr_id}")
        row = self.store.add_participant(adr_id, user_id, role)
        return self._created(EntityType.ADR_PARTICIPANT, row)

    def update_participant_role(self, participant_id: int, role: ParticipantRole | str) -> MutationResult:
        previous = self._require(self.store.get_participant(participant_id), "adr_participants", participant_id)
        row = self.store.update_participant_role(participant_id, role)
        return self._updated(EntityType.ADR_PARTICIPANT, row, previous)

    def remove_participant(self, participant_id: int) -> MutationResult:
        snapshot = self.store.delete_participant(participant_id)
        return self._deleted(EntityType.ADR_PARTICIPANT, snapshot)

    # ========================
    # ADR impacts
    # ========================

    def add_adr_component_instance(
        self,
        adr_id: int,
        instance_id: int,
        impact_level: ImpactLevel | str = ImpactLevel.MEDIUM,
        notes: str | None = None,
    ) -> MutationResult:
        """Record that an ADR affects an instance.

        The graph sync also derives the ADR→component link the first time
        any instance of that component is affected.
        """
        self._require(self.store.get_adr(adr_id), "adrs", adr_id)
        self._require(self.store.get_component_instance(instance_id), "component_instances", instance_id)
        row = self.store.create_adr_component_instance(adr_id, instance_id, impact_level, notes)
        return self._created(EntityType.ADR_COMPONENT_INSTANCE, row)

    def update_adr_component_instance(self, row_id: int, **fields: Any) -> MutationResult:
        previous = self._require(
            self.store.get_adr_component_instance(row_id), "adr_component_instances", row_id
        )
        row = self.store.update_adr_component_instance(row_id, **fields)
        return self._updated(EntityType.ADR_COMPONENT_INSTANCE, row, previous)

    def remove_adr_component_instance(self, row_id: int) -> MutationResult:
        """Remove an instance impact.

        When no other instance of the same component remains affected by
        the ADR, the derived ADR→component link is removed too.
        """
        snapshot = self.store.delete_adr_component_instance(row_id)
        results = [self.hooks.on_entity_deleted(EntityType.ADR_COMPONENT_INSTANCE, row_id, snapshot)]

        adr_id, component_id = snapshot["adr_id"], snapshot["component_id"]
        if self.store.count_adr_instances_for_component(adr_id, component_id) == 0:
            link = self.store.get_adr_component_by_pair(adr_id, component_id)
            if link is not None:
                link_snapshot = self.store.delete_adr_component(link["id"])
                logger.info(
                    f"Removed ADR component link adr={adr_id} component={component_id}",
                    extra={"event": "adr_component_removed", "adr_id": adr_id, "component_id": component_id},
                )
                results.append(
                    self.hooks.on_entity_deleted(EntityType.ADR_COMPONENT, link["id"], link_snapshot)
                )

        return MutationResult(entity=snapshot, sync=SyncResult.combine(results))

    def add_adr_component(self, adr_id: int, component_id: int) -> MutationResult:
        self._require(self.store.get_adr(adr_id), "adrs", adr_id)
        self._require(self.store.get_component(component_id), "components", component_id)
        row, created = self.store.ensure_adr_component(adr_id, component_id)
        if not created:
            return MutationResult(entity=row)
        return self._created(EntityType.ADR_COMPONENT, row)

    def remove_adr_component(self, row_id: int) -> MutationResult:
        snapshot = self.store.delete_adr_component(row_id)
        return self._deleted(EntityType.ADR_COMPONENT, snapshot)
