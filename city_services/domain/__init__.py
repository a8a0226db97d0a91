"""Domain models used across application layer boundaries."""

from .clock import ClockProvider, ManualClock, domain_utc_now
from .models import (
	CHANGE_TYPE_CONSOLIDATED,
	CHANGE_TYPE_CREATED,
	CHANGE_TYPE_RENAMED,
	CHANGE_TYPE_TERMINATED,
	CHANGE_TYPES,
	DECISION_APPROVED,
	DECISION_DEFERRED,
	DECISION_REJECTED,
	DEPARTMENT_STATUS_PERMANENTLY_FAILED,
	DEPARTMENT_STATUS_RESTARTING,
	DEPARTMENT_STATUS_RUNNING,
	DEPARTMENT_STATUS_STARTING,
	DEPARTMENT_STATUS_UNRESPONSIVE,
	DEPARTMENT_STATUSES,
	RECOMMENDATION_TYPE_CONSOLIDATION,
	RECOMMENDATION_TYPE_TERMINATION,
	ChangeNotification,
	Decision,
	DepartmentRecord,
	DepartmentSnapshot,
	FallbackEntry,
	HealthStatus,
	RoutingEntry,
)
from .timeline import domain_build_lifecycle_event

__all__ = [
	"CHANGE_TYPE_CONSOLIDATED",
	"CHANGE_TYPE_CREATED",
	"CHANGE_TYPE_RENAMED",
	"CHANGE_TYPE_TERMINATED",
	"CHANGE_TYPES",
	"DECISION_APPROVED",
	"DECISION_DEFERRED",
	"DECISION_REJECTED",
	"DEPARTMENT_STATUS_PERMANENTLY_FAILED",
	"DEPARTMENT_STATUS_RESTARTING",
	"DEPARTMENT_STATUS_RUNNING",
	"DEPARTMENT_STATUS_STARTING",
	"DEPARTMENT_STATUS_UNRESPONSIVE",
	"DEPARTMENT_STATUSES",
	"RECOMMENDATION_TYPE_CONSOLIDATION",
	"RECOMMENDATION_TYPE_TERMINATION",
	"ChangeNotification",
	"ClockProvider",
	"Decision",
	"DepartmentRecord",
	"DepartmentSnapshot",
	"FallbackEntry",
	"HealthStatus",
	"ManualClock",
	"RoutingEntry",
	"domain_build_lifecycle_event",
	"domain_utc_now",
]
