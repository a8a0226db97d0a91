"""Typed domain models shared across runtime layers.

This module provides the data contracts for department supervision, routing
and council governance. Only `DepartmentRecord` is mutable, and it is owned
by the process supervisor; every other layer works with frozen copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

DEPARTMENT_STATUS_STARTING = "starting"
DEPARTMENT_STATUS_RUNNING = "running"
DEPARTMENT_STATUS_UNRESPONSIVE = "unresponsive"
DEPARTMENT_STATUS_RESTARTING = "restarting"
DEPARTMENT_STATUS_PERMANENTLY_FAILED = "permanently_failed"

DEPARTMENT_STATUSES = frozenset(
    {
        DEPARTMENT_STATUS_STARTING,
        DEPARTMENT_STATUS_RUNNING,
        DEPARTMENT_STATUS_UNRESPONSIVE,
        DEPARTMENT_STATUS_RESTARTING,
        DEPARTMENT_STATUS_PERMANENTLY_FAILED,
    }
)

DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"
DECISION_DEFERRED = "deferred"

RECOMMENDATION_TYPE_CONSOLIDATION = "consolidation"
RECOMMENDATION_TYPE_TERMINATION = "termination"

CHANGE_TYPE_CONSOLIDATED = "consolidated"
CHANGE_TYPE_TERMINATED = "terminated"
CHANGE_TYPE_CREATED = "created"
CHANGE_TYPE_RENAMED = "renamed"

CHANGE_TYPES = frozenset({CHANGE_TYPE_CONSOLIDATED, CHANGE_TYPE_TERMINATED, CHANGE_TYPE_CREATED, CHANGE_TYPE_RENAMED})


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str


@dataclass
class DepartmentRecord:
    """Mutable lifecycle state of one supervised department process.

    Attributes:
        name: Unique logical department name.
        process_handle: Opaque launcher handle, `None` when no process is held.
        status: Lifecycle status (see `DEPARTMENT_STATUSES`).
        process_failure_count: Consecutive ticks with a dead process.
        health_failure_count: Consecutive missing or unhealthy health replies.
        restart_count: Restart attempts since the last confirmed recovery.
        created_at: Record creation timestamp.
        last_process_check: Last liveness probe timestamp.
        last_health_request: Last health-check request timestamp.
        last_health_reply: Last health reply timestamp.
        last_failure: Last counted failure timestamp.
        last_restart: Last restart attempt timestamp.
        awaiting_response: Whether a health-check request is outstanding.
        last_reported_status: Status text of the last health reply.
    """

    name: str
    process_handle: Any
    status: str
    created_at: datetime
    process_failure_count: int = 0
    health_failure_count: int = 0
    restart_count: int = 0
    last_process_check: datetime | None = None
    last_health_request: datetime | None = None
    last_health_reply: datetime | None = None
    last_failure: datetime | None = None
    last_restart: datetime | None = None
    awaiting_response: bool = False
    last_reported_status: str | None = None

    def record_snapshot(self) -> DepartmentSnapshot:
        """Return an immutable copy of this record for callers outside the supervisor.

        Returns:
            DepartmentSnapshot: Frozen copy of record state.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return DepartmentSnapshot(
            name=self.name,
            process_handle=None if self.process_handle is None else str(self.process_handle),
            status=self.status,
            process_failure_count=self.process_failure_count,
            health_failure_count=self.health_failure_count,
            restart_count=self.restart_count,
            created_at=self.created_at,
            last_process_check=self.last_process_check,
            last_health_request=self.last_health_request,
            last_health_reply=self.last_health_reply,
            last_failure=self.last_failure,
            last_restart=self.last_restart,
            awaiting_response=self.awaiting_response,
            last_reported_status=self.last_reported_status,
        )


@dataclass(frozen=True)
class DepartmentSnapshot:
    """Frozen view of one department record."""

    name: str
    process_handle: str | None
    status: str
    process_failure_count: int
    health_failure_count: int
    restart_count: int
    created_at: datetime
    last_process_check: datetime | None
    last_health_request: datetime | None
    last_health_reply: datetime | None
    last_failure: datetime | None
    last_restart: datetime | None
    awaiting_response: bool
    last_reported_status: str | None

    def snapshot_to_payload(self) -> dict[str, object]:
        """Serialize snapshot to a JSON-compatible payload.

        Returns:
            dict[str, object]: Serialized snapshot.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        def _iso(value: datetime | None) -> str | None:
            return None if value is None else value.isoformat()

        return {
            "name": self.name,
            "process_handle": self.process_handle,
            "status": self.status,
            "process_failure_count": self.process_failure_count,
            "health_failure_count": self.health_failure_count,
            "restart_count": self.restart_count,
            "created_at": _iso(self.created_at),
            "last_process_check": _iso(self.last_process_check),
            "last_health_request": _iso(self.last_health_request),
            "last_health_reply": _iso(self.last_health_reply),
            "last_failure": _iso(self.last_failure),
            "last_restart": _iso(self.last_restart),
            "awaiting_response": self.awaiting_response,
            "last_reported_status": self.last_reported_status,
        }


@dataclass(frozen=True)
class RoutingEntry:
    """Directed edge: work intended for `source_name` goes to `target_name`."""

    source_name: str
    target_name: str


@dataclass(frozen=True)
class FallbackEntry:
    """Fallback used when the resolved target of `name` is not live."""

    name: str
    fallback_name: str


@dataclass(frozen=True)
class Decision:
    """Council decision for one recommendation.

    Attributes:
        recommendation_id: Identifier of the evaluated recommendation.
        recommendation_type: `consolidation` or `termination`.
        outcome: `approved`, `rejected` or `deferred`.
        rationale: Audit rationale derived from the outcome category.
        decided_at: Decision timestamp.
    """

    recommendation_id: str
    recommendation_type: str
    outcome: str
    rationale: str
    decided_at: datetime

    def decision_is_approved(self) -> bool:
        """Return whether this decision approves the recommendation."""

        return self.outcome == DECISION_APPROVED


@dataclass(frozen=True)
class ChangeNotification:
    """Routing change broadcast to every routing-aware consumer.

    Attributes:
        change_id: Unique change identifier.
        change_type: One of `CHANGE_TYPES`.
        affected_names: Department names affected by the change.
        new_name: Successor department name for consolidations, creations and renames.
        routing_changes: Mapping of old department name to new routing target.
        fallback_name: Department used when primary routing fails.
        effective_immediately: Whether consumers apply the change right away.
        capabilities_mapping: Capability remaps keyed by old department or service.
        emergency_types_affected: Emergency types whose routing changes.
        rollback_available: Whether the change can be reversed.
        rollback_instructions: Data needed to reverse the change.
        initiated_by: Service that initiated the change.
    """

    change_id: str
    change_type: str
    affected_names: tuple[str, ...]
    routing_changes: dict[str, str]
    new_name: str | None = None
    fallback_name: str | None = None
    effective_immediately: bool = True
    capabilities_mapping: dict[str, Any] = field(default_factory=dict)
    emergency_types_affected: tuple[str, ...] = ()
    rollback_available: bool = False
    rollback_instructions: dict[str, Any] | None = None
    initiated_by: str | None = None

    def notification_routing_entries(self) -> tuple[RoutingEntry, ...]:
        """Return routing changes as ordered routing entries.

        Returns:
            tuple[RoutingEntry, ...]: Entries sorted by source name.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return tuple(
            RoutingEntry(source_name=source_name, target_name=target_name)
            for source_name, target_name in sorted(self.routing_changes.items())
        )

    def notification_to_payload(self) -> dict[str, object]:
        """Serialize notification to a JSON-compatible payload.

        Returns:
            dict[str, object]: Serialized notification.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return {
            "change_id": self.change_id,
            "change_type": self.change_type,
            "affected_departments": list(self.affected_names),
            "new_department": self.new_name,
            "routing_changes": dict(self.routing_changes),
            "fallback_department": self.fallback_name,
            "effective_immediately": self.effective_immediately,
            "capabilities_mapping": dict(self.capabilities_mapping),
            "emergency_types_affected": list(self.emergency_types_affected),
            "rollback_available": self.rollback_available,
            "rollback_instructions": self.rollback_instructions,
            "initiated_by": self.initiated_by,
        }
