"""Routing package for change mirroring, chain resolution and call dispatch."""

from .classifier import (
	DEFAULT_EMERGENCY_TYPE_DEPARTMENTS,
	DepartmentClassifierPort,
	KeywordRule,
	RuleTableDepartmentClassifier,
)
from .dispatch_router import DispatchRouter, PendingDispatch, UndeliverableDispatch
from .table import RoutingTable

__all__ = [
	"DEFAULT_EMERGENCY_TYPE_DEPARTMENTS",
	"DepartmentClassifierPort",
	"DispatchRouter",
	"KeywordRule",
	"PendingDispatch",
	"RoutingTable",
	"RuleTableDepartmentClassifier",
	"UndeliverableDispatch",
]
