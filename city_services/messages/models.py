"""Pydantic message contracts exchanged over the city message bus."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from city_services.domain import ChangeNotification


def _message_new_identifier() -> str:
    return uuid4().hex


def _message_utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BusMessage(BaseModel):
    """Base model for all bus payloads.

    Payloads are immutable once received and tolerate unknown fields so newer
    producers do not break older consumers.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class HealthCheckRequest(BusMessage):
    """Health probe sent by the council to one department."""

    check_id: str = Field(default_factory=_message_new_identifier, min_length=1)
    from_service: str = Field(..., alias="from", min_length=1)
    to_service: str = Field(..., alias="to", min_length=1)


class HealthStatusReply(BusMessage):
    """Health status reported by a department in response to a probe."""

    check_id: str | None = Field(default=None)
    service_name: str = Field(..., min_length=1)
    status: Literal["healthy", "warning", "critical", "failed"]
    uptime_seconds: float = Field(default=0.0, ge=0)
    message_count: int = Field(default=0, ge=0)
    details: dict[str, Any] = Field(default_factory=dict)


class ServiceRequest(BusMessage):
    """Request for a department that the dispatch center could not reach."""

    requesting_service: str = Field(..., min_length=1)
    emergency_type: str | None = Field(default=None)
    description: str = Field(default="")
    urgency: str = Field(default="high")
    department_needed: str | None = Field(default=None)
    original_call_id: str | None = Field(default=None)
    details: dict[str, Any] = Field(default_factory=dict)


class ConsolidationRecommendation(BusMessage):
    """Analyzer proposal to merge two or more departments into one successor."""

    recommendation_id: str = Field(default_factory=_message_new_identifier, min_length=1)
    proposed_name: str = Field(..., min_length=1)
    departments_to_merge: list[str] = Field(..., min_length=1)
    similarity_score: float | None = Field(default=None, ge=0, le=100)
    estimated_annual_savings: float | None = Field(default=None, ge=0)
    priority: str = Field(default="medium")
    overlapping_functions: list[str] = Field(default_factory=list)
    unified_capabilities: list[str] = Field(default_factory=list)
    rationale: str | None = Field(default=None)
    analyzed_by: str = Field(default="doge")

    @field_validator("departments_to_merge")
    @classmethod
    def _validate_department_names(cls, value: list[str]) -> list[str]:
        normalized_names = [name.strip() for name in value]
        if any(not name for name in normalized_names):
            raise ValueError("departments_to_merge must not contain blank names")
        return normalized_names

    @field_validator("proposed_name")
    @classmethod
    def _validate_proposed_name(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("proposed_name must not be blank")
        return stripped_value


class TerminationRecommendation(BusMessage):
    """Analyzer proposal to retire one department."""

    recommendation_id: str = Field(default_factory=_message_new_identifier, min_length=1)
    department_name: str = Field(..., min_length=1)
    termination_reason: str = Field(..., min_length=1)
    annual_cost: float | None = Field(default=None, ge=0)
    priority: str = Field(default="medium")
    detailed_rationale: str | None = Field(default=None)
    services_to_reassign: list[dict[str, str]] = Field(default_factory=list)
    analyzed_by: str = Field(default="doge")

    @field_validator("department_name", "termination_reason")
    @classmethod
    def _validate_non_blank(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value


class CouncilDecision(BusMessage):
    """Decision returned to the analyzer that proposed a recommendation."""

    recommendation_id: str = Field(..., min_length=1)
    recommendation_type: Literal["consolidation", "termination"]
    decision: Literal["approved", "rejected", "deferred"]
    decision_rationale: str
    effective_date: str
    decided_by: str


class DepartmentChangeNotification(BusMessage):
    """Wire form of a routing change consumed by routing-aware services."""

    change_id: str = Field(default_factory=_message_new_identifier, min_length=1)
    change_type: Literal["consolidated", "terminated", "created", "renamed"]
    affected_departments: list[str] = Field(default_factory=list)
    new_department: str | None = Field(default=None)
    routing_changes: dict[str, str] = Field(default_factory=dict)
    fallback_department: str | None = Field(default=None)
    effective_immediately: bool = Field(default=True)
    capabilities_mapping: dict[str, Any] = Field(default_factory=dict)
    emergency_types_affected: list[str] = Field(default_factory=list)
    rollback_available: bool = Field(default=False)
    rollback_instructions: dict[str, Any] | None = Field(default=None)
    initiated_by: str | None = Field(default=None)
    change_timestamp: datetime = Field(default_factory=_message_utc_now)

    @classmethod
    def message_from_change(cls, notification: ChangeNotification) -> DepartmentChangeNotification:
        """Build wire message from a domain change notification.

        Args:
            notification: Domain change notification.

        Returns:
            DepartmentChangeNotification: Wire message.

        Raises:
            pydantic.ValidationError: Raised when notification values are invalid.
        """

        return cls.model_validate(notification.notification_to_payload())

    def message_to_change(self) -> ChangeNotification:
        """Convert wire message to the domain change notification.

        Returns:
            ChangeNotification: Domain notification.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return ChangeNotification(
            change_id=self.change_id,
            change_type=self.change_type,
            affected_names=tuple(self.affected_departments),
            routing_changes=dict(self.routing_changes),
            new_name=self.new_department,
            fallback_name=self.fallback_department,
            effective_immediately=self.effective_immediately,
            capabilities_mapping=dict(self.capabilities_mapping),
            emergency_types_affected=tuple(self.emergency_types_affected),
            rollback_available=self.rollback_available,
            rollback_instructions=None if self.rollback_instructions is None else dict(self.rollback_instructions),
            initiated_by=self.initiated_by,
        )


class DepartmentAnalysisRequest(BusMessage):
    """Periodic efficiency analysis request sent to the analyzers."""

    analysis_type: str = Field(default="periodic_audit")
    requested_by: str = Field(..., min_length=1)
    target_departments: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=lambda: ["cost_reduction", "service_overlap", "utilization"])
    similarity_threshold: float = Field(default=0.15, ge=0, le=1)
    include_cost_analysis: bool = Field(default=True)
    include_usage_metrics: bool = Field(default=True)
    urgency: str = Field(default="normal")
    reason: str = Field(default="Periodic efficiency review to optimize city services")


class DepartmentAnnouncement(BusMessage):
    """Council announcement about a department launch outcome."""

    department_name: str = Field(..., min_length=1)
    status: Literal["created", "launched", "failed", "active"]
    process_id: str | None = Field(default=None)
    description: str | None = Field(default=None)

    @field_validator("department_name")
    @classmethod
    def _validate_department_name(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("department_name must not be blank")
        return stripped_value


class EmergencyCall(BusMessage):
    """Inbound unit of work routed by the dispatch center."""

    call_id: str = Field(default_factory=_message_new_identifier, min_length=1)
    emergency_type: str = Field(..., min_length=1)
    description: str = Field(default="")
    caller_location: str | None = Field(default=None)
    severity: str | None = Field(default=None)
    requested_department: str | None = Field(default=None)
    injuries_reported: bool = Field(default=False)
    fire_involved: bool = Field(default=False)
    weapons_involved: bool = Field(default=False)
    hazardous_materials: bool = Field(default=False)
    suspects_on_scene: bool = Field(default=False)
    vehicles_involved: int = Field(default=0, ge=0)
