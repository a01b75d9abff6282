"""Core data types for the Beaver architecture catalogue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class EntityType(str, Enum):
    """Relational entity types that have a graph counterpart."""

    ENVIRONMENT = "environment"
    TEAM = "team"
    USER = "user"
    COMPONENT = "component"
    ADR = "adr"
    COMPONENT_INSTANCE = "component_instance"
    ADR_PARTICIPANT = "adr_participant"
    ADR_COMPONENT_INSTANCE = "adr_component_instance"
    ADR_COMPONENT = "adr_component"


class ComponentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PLANNED = "PLANNED"
    INACTIVE = "INACTIVE"
    DEPRECATED = "DEPRECATED"


class ADRStatus(str, Enum):
    DRAFT = "DRAFT"
    ACCEPTED = "ACCEPTED"
    SUPERSEDED = "SUPERSEDED"
    REJECTED = "REJECTED"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ARCHITECT = "ARCHITECT"
    USER = "USER"


class ParticipantRole(str, Enum):
    OWNER = "OWNER"
    REVIEWER = "REVIEWER"
    CONSUMER = "CONSUMER"


class ImpactLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class NodeLabel(str, Enum):
    """Graph node labels. Labels cannot be query parameters, so only these are interpolated."""

    ENVIRONMENT = "Environment"
    TEAM = "Team"
    USER = "User"
    COMPONENT = "Component"
    ADR = "ADR"
    COMPONENT_INSTANCE = "ComponentInstance"


class RelType(str, Enum):
    """Graph relationship types."""

    MANAGED_BY = "MANAGED_BY"
    INSTANTIATES = "INSTANTIATES"
    DEPLOYED_IN = "DEPLOYED_IN"
    PARTICIPATES_IN = "PARTICIPATES_IN"
    AFFECTS_INSTANCE = "AFFECTS_INSTANCE"
    AFFECTS = "AFFECTS"


class ComponentRelationType(str, Enum):
    """Component-to-component links.

    These exist only in the graph. No relational row implies them, so the
    validator and repair never count or prune them.
    """

    DEPENDS_ON = "DEPENDS_ON"
    CONNECTS_TO = "CONNECTS_TO"
    RUNS_ON = "RUNS_ON"
    STORES_DATA_IN = "STORES_DATA_IN"
    CONTAINS = "CONTAINS"
    PROTECTS = "PROTECTS"


class SyncPolicy(str, Enum):
    """What a targeted sync does when the graph write fails."""

    BEST_EFFORT = "best_effort"
    STRICT = "strict"


class SyncStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"


class IntegrityCheck(str, Enum):
    """Every check the validator runs, in repair order.

    The value is the ``entity`` name reported in a discrepancy.
    """

    USERS = "users"
    ENVIRONMENTS = "environments"
    COMPONENTS = "components"
    TEAMS = "teams"
    COMPONENT_TEAMS = "componentTeams"
    ADRS = "adrs"
    COMPONENT_INSTANCES = "componentInstances"
    ADR_PARTICIPANTS = "adrParticipants"
    ADR_COMPONENT_INSTANCES = "adrComponentInstances"
    ADR_COMPONENTS = "adrComponents"
    ORPHANED_INSTANCES = "orphanedInstances"
    STALE_NODES = "staleNodes"
    STALE_RELATIONSHIPS = "staleRelationships"


class RepairAction(str, Enum):
    RESYNC = "resync"
    FIX = "fix"
    PRUNE = "prune"


# Entity types modeled as graph nodes, and the label each one uses.
NODE_LABELS: dict[EntityType, NodeLabel] = {
    EntityType.ENVIRONMENT: NodeLabel.ENVIRONMENT,
    EntityType.TEAM: NodeLabel.TEAM,
    EntityType.USER: NodeLabel.USER,
    EntityType.COMPONENT: NodeLabel.COMPONENT,
    EntityType.ADR: NodeLabel.ADR,
    EntityType.COMPONENT_INSTANCE: NodeLabel.COMPONENT_INSTANCE,
}

# Entity type whose rows imply each relationship type.
REL_OWNERS: dict[RelType, EntityType] = {
    RelType.MANAGED_BY: EntityType.COMPONENT,
    RelType.INSTANTIATES: EntityType.COMPONENT_INSTANCE,
    RelType.DEPLOYED_IN: EntityType.COMPONENT_INSTANCE,
    RelType.PARTICIPATES_IN: EntityType.ADR_PARTICIPANT,
    RelType.AFFECTS_INSTANCE: EntityType.ADR_COMPONENT_INSTANCE,
    RelType.AFFECTS: EntityType.ADR_COMPONENT,
}

# Record store table of each entity type.
ENTITY_TABLES: dict[EntityType, str] = {
    EntityType.ENVIRONMENT: "environments",
    EntityType.TEAM: "teams",
    EntityType.USER: "users",
    EntityType.COMPONENT: "components",
    EntityType.ADR: "adrs",
    EntityType.COMPONENT_INSTANCE: "component_instances",
    EntityType.ADR_PARTICIPANT: "adr_participants",
    EntityType.ADR_COMPONENT_INSTANCE: "adr_component_instances",
    EntityType.ADR_COMPONENT: "adr_components",
}

# Open-ended upper bound of a component's validity interval.
VALID_TO_OPEN = "9999-12-31T23:59:59Z"


def normalize_timestamp(value: str) -> str:
    """Return ``value`` as a UTC ``YYYY-MM-DDTHH:MM:SS`` string.

    Record store timestamps use a space separator and no offset; API
    callers send ISO 8601. Both compare correctly once normalized.

    Raises:
        ValueError: If ``value`` is not an ISO 8601 date or datetime
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S")


@dataclass
class ComponentRelation:
    """A graph-only link between two components, keyed by a generated uid."""

    uid: str
    type: ComponentRelationType
    source_id: int
    target_id: int
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.uid,
            "type": self.type.value,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "properties": dict(self.properties),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# ========================
# Reports
# ========================


@dataclass
class Discrepancy:
    """One integrity finding.

    Count checks fill ``relational``, ``graph`` and ``difference``
    (relational minus graph). Orphan and stale checks fill ``count``,
    ``description`` and ``details``.
    """

    check: IntegrityCheck
    relational: Optional[int] = None
    graph: Optional[int] = None
    difference: Optional[int] = None
    count: Optional[int] = None
    description: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    @property
    def entity(self) -> str:
        return self.check.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"entity": self.entity}
        if self.difference is not None:
            data["relational"] = self.relational
            data["graph"] = self.graph
            data["difference"] = self.difference
        else:
            data["count"] = self.count
            data["description"] = self.description
            if self.details:
                data["details"] = self.details
        return data


@dataclass
class ValidationReport:
    """Result of comparing the record store against the graph."""

    valid: bool
    discrepancies: list[Discrepancy] = field(default_factory=list)
    counts_relational: dict[str, int] = field(default_factory=dict)
    counts_graph: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "countsRelational": dict(self.counts_relational),
            "countsGraph": dict(self.counts_graph),
        }


@dataclass
class Correction:
    """One corrective action attempted by repair."""

    entity: str
    action: RepairAction
    status: str = "success"
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entity": self.entity,
            "action": self.action.value,
            "status": self.status,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RepairReport:
    """Result of a repair pass."""

    fixed: bool
    corrections: list[Correction] = field(default_factory=list)
    final_report: Optional[ValidationReport] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "fixed": self.fixed,
            "corrections": [c.to_dict() for c in self.corrections],
        }
        if self.final_report is not None:
            data["finalReport"] = self.final_report.to_dict()
        return data


@dataclass
class SyncStats:
    """Counts produced by one full-table sync routine."""

    entity: EntityType
    rows: int = 0
    relationships: int = 0
    derived: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity.value,
            "rows": self.rows,
            "relationships": self.relationships,
            "derived": self.derived,
        }


@dataclass
class SyncResult:
    """Outcome of the graph side of a targeted sync."""

    status: SyncStatus = SyncStatus.OK
    warning: Optional[str] = None

    @property
    def sync_failed(self) -> bool:
        return self.status == SyncStatus.WARNING

    @classmethod
    def ok(cls) -> SyncResult:
        return cls()

    @classmethod
    def failed(cls, warning: str) -> SyncResult:
        return cls(status=SyncStatus.WARNING, warning=warning)

    @classmethod
    def combine(cls, results: list[SyncResult]) -> SyncResult:
        """Fold several hook results into one, keeping every warning."""
        warnings = [r.warning for r in results if r.sync_failed and r.warning]
        if not warnings:
            return cls.ok()
        return cls.failed("; ".join(warnings))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "warning": self.warning,
            "sync_failed": self.sync_failed,
        }


@dataclass
class MutationResult:
    """A committed relational write plus the outcome of its graph sync.

    Relational failures are raised, so a MutationResult always means the
    record store holds the change.
    """

    entity: Optional[dict[str, Any]]
    sync: SyncResult = field(default_factory=SyncResult)

    @property
    def sync_warning(self) -> bool:
        return self.sync.sync_failed
