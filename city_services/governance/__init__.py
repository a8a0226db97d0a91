"""Governance package for recommendation decisions and change broadcasts."""

from .evaluator import EvaluationResult, Recommendation, RecommendationEvaluator
from .interfaces import DepartmentDirectoryPort
from .notifications import ROLLBACK_ACTION_RESTORE, NotificationDispatcher
from .policy import (
	DECISION_RATIONALES,
	CategoryRule,
	GovernancePolicy,
	governance_default_category_rules,
	governance_policy_from_settings,
)

__all__ = [
	"CategoryRule",
	"DECISION_RATIONALES",
	"DepartmentDirectoryPort",
	"EvaluationResult",
	"GovernancePolicy",
	"NotificationDispatcher",
	"ROLLBACK_ACTION_RESTORE",
	"Recommendation",
	"RecommendationEvaluator",
	"governance_default_category_rules",
	"governance_policy_from_settings",
]
