"""Governance policy tables: decision thresholds and category rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from city_services.domain import DECISION_APPROVED, DECISION_DEFERRED, DECISION_REJECTED

DECISION_RATIONALES: Final[dict[str, str]] = {
    DECISION_APPROVED: "Recommendation approved based on cost-benefit analysis and efficiency goals",
    DECISION_REJECTED: "Recommendation rejected to maintain essential services or insufficient justification",
    DECISION_DEFERRED: "Recommendation deferred pending further review and citizen input",
}


@dataclass(frozen=True)
class CategoryRule:
    """Substring rule that maps department names to a category result.

    Attributes:
        keywords: Lowercase substrings; the rule matches when any is present.
        fallback_name: Department receiving work of a terminated match, `None` for the dispatch center.
        emergency_types: Emergency types handled by matching departments.
    """

    keywords: tuple[str, ...]
    fallback_name: str | None
    emergency_types: tuple[str, ...]

    def rule_matches(self, department_name: str) -> bool:
        lowered_name = department_name.lower()
        return any(keyword in lowered_name for keyword in self.keywords)


def governance_default_category_rules(public_works_name: str = "public_works_department") -> tuple[CategoryRule, ...]:
    """Return the default category rule table, first match wins.

    Args:
        public_works_name: Department absorbing utility and park work.

    Returns:
        tuple[CategoryRule, ...]: Ordered category rules.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return (
        CategoryRule(keywords=("police",), fallback_name=None, emergency_types=("crime", "theft", "assault", "traffic_accident")),
        CategoryRule(keywords=("fire",), fallback_name=None, emergency_types=("fire", "rescue", "hazmat")),
        CategoryRule(
            keywords=("health", "medical", "ems"),
            fallback_name="fire_department",
            emergency_types=("medical", "injury", "illness"),
        ),
        CategoryRule(keywords=("animal",), fallback_name="police_department", emergency_types=("animal_attack", "animal_rescue")),
        CategoryRule(
            keywords=("water", "utility", "utilities"),
            fallback_name=public_works_name,
            emergency_types=("water_leak", "service_outage"),
        ),
        CategoryRule(
            keywords=("parks", "recreation"),
            fallback_name=public_works_name,
            emergency_types=("park_emergency", "facility_issue"),
        ),
    )


@dataclass(frozen=True)
class GovernancePolicy:
    """Thresholds and lists driving recommendation decisions.

    Attributes:
        approve_similarity: Consolidations strictly above this similarity may be approved.
        defer_similarity: Consolidations strictly above this similarity are at least deferred.
        min_savings: Approved consolidations must save strictly more than this.
        protected_departments: Substrings of names that can never be terminated.
        approved_termination_reasons: Reasons that approve a termination outright.
        dispatch_center_name: Default routing target for terminated departments.
        category_rules: Ordered category rule table.
    """

    approve_similarity: float = 70.0
    defer_similarity: float = 50.0
    min_savings: float = 100000.0
    protected_departments: tuple[str, ...] = ("police", "fire", "health", "emergency_dispatch_center")
    approved_termination_reasons: tuple[str, ...] = ("redundant", "obsolete", "unused")
    dispatch_center_name: str = "emergency_dispatch_center"
    category_rules: tuple[CategoryRule, ...] = field(default_factory=governance_default_category_rules)

    def policy_fallback_for(self, department_name: str) -> str:
        """Return the category fallback for a terminated department."""

        for rule in self.category_rules:
            if rule.rule_matches(department_name):
                return rule.fallback_name or self.dispatch_center_name
        return self.dispatch_center_name

    def policy_emergency_types_for(self, department_names: list[str] | tuple[str, ...]) -> tuple[str, ...]:
        """Return de-duplicated emergency types handled by the given departments."""

        emergency_types: list[str] = []
        for department_name in department_names:
            for rule in self.category_rules:
                if rule.rule_matches(department_name):
                    emergency_types.extend(
                        emergency_type for emergency_type in rule.emergency_types if emergency_type not in emergency_types
                    )
                    break
        return tuple(emergency_types)


def governance_policy_from_settings(settings) -> GovernancePolicy:
    """Build the governance policy from loaded settings.

    Args:
        settings: Loaded `CitySettings`.

    Returns:
        GovernancePolicy: Policy with thresholds and names from settings.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return GovernancePolicy(
        approve_similarity=float(settings.consolidation_approve_similarity),
        defer_similarity=float(settings.consolidation_defer_similarity),
        min_savings=float(settings.consolidation_min_savings),
        protected_departments=tuple(settings.protected_departments),
        approved_termination_reasons=tuple(settings.approved_termination_reasons),
        dispatch_center_name=settings.dispatch_center_name,
        category_rules=governance_default_category_rules(public_works_name=settings.public_works_name),
    )
