"""Pluggable emergency classification into required department names."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final, Protocol

from city_services.messages import EmergencyCall

logger = logging.getLogger(__name__)


class DepartmentClassifierPort(Protocol):
    """Port definition for mapping one inbound call to candidate departments."""

    def classifier_required_departments(self, call: EmergencyCall) -> list[str]:
        """Return the department names that should handle a call.

        Args:
            call: Inbound emergency call.

        Returns:
            list[str]: Ordered, de-duplicated candidate department names.

        Raises:
            RuntimeError: Raised when classification cannot be performed.
        """


@dataclass(frozen=True)
class KeywordRule:
    """Description keyword rule used for loosely typed emergencies.

    Attributes:
        pattern: Regular expression searched in the lowercased description.
        department_name: Department selected when the pattern matches.
    """

    pattern: str
    department_name: str


DEFAULT_EMERGENCY_TYPE_DEPARTMENTS: Final[dict[str, str]] = {
    "fire": "fire_department",
    "rescue": "fire_department",
    "crime": "police_department",
    "accident": "police_department",
    "medical": "fire_department",
    "water_emergency": "water_department",
    "animal_emergency": "animal_control",
    "transportation_emergency": "transportation_department",
    "environmental_emergency": "environmental_services",
    "parks_emergency": "parks_department",
    "sanitation_emergency": "sanitation_department",
}

DEFAULT_KEYWORD_RULES: Final[dict[str, tuple[KeywordRule, ...]]] = {
    "infrastructure": (
        KeywordRule(pattern=r"water|sewer|pipe|hydrant", department_name="water_management_department"),
        KeywordRule(pattern=r"power|electric|gas|utility", department_name="utilities_department"),
        KeywordRule(pattern=r"road|street|traffic|bridge", department_name="transportation_department"),
    ),
    "other": (
        KeywordRule(pattern=r"animal|dog|cat|wildlife", department_name="animal_control_department"),
        KeywordRule(pattern=r"building|structure|construction", department_name="building_inspection_department"),
        KeywordRule(pattern=r"park|tree|playground", department_name="parks_recreation_department"),
    ),
}

DEFAULT_KEYWORD_FALLBACKS: Final[dict[str, str]] = {
    "infrastructure": "public_works_department",
    "other": "police_department",
}


class RuleTableDepartmentClassifier(DepartmentClassifierPort):
    """Rule-table classifier used when no smarter classifier is configured.

    A requested department always wins. Otherwise the emergency type selects
    one department (keyword rules refine `infrastructure` and `other`), then
    police is added for weapons, suspects or critical severity and the fire
    department for injuries, hazardous materials or fire.
    """

    _TYPE_ALIASES: Final[dict[str, str]] = {"infrastructure_emergency": "infrastructure"}

    def __init__(
        self,
        type_departments: dict[str, str] | None = None,
        keyword_rules: dict[str, tuple[KeywordRule, ...]] | None = None,
        keyword_fallbacks: dict[str, str] | None = None,
        police_name: str = "police_department",
        fire_name: str = "fire_department",
    ):
        """Initialize rule-table classifier.

        Args:
            type_departments: Emergency type to department mapping.
            keyword_rules: Description rules keyed by emergency type.
            keyword_fallbacks: Department used when no keyword rule matches.
            police_name: Department added for violent or critical calls.
            fire_name: Department added for injuries, hazmat or fire.

        Raises:
            ValueError: Raised when a keyword pattern is invalid.
        """

        self._type_departments = dict(type_departments or DEFAULT_EMERGENCY_TYPE_DEPARTMENTS)
        self._keyword_fallbacks = dict(keyword_fallbacks or DEFAULT_KEYWORD_FALLBACKS)
        self._police_name = police_name
        self._fire_name = fire_name
        self._compiled_rules: dict[str, tuple[tuple[re.Pattern[str], str], ...]] = {}
        for emergency_type, rules in (keyword_rules or DEFAULT_KEYWORD_RULES).items():
            try:
                self._compiled_rules[emergency_type] = tuple(
                    (re.compile(rule.pattern), rule.department_name) for rule in rules
                )
            except re.error as error:
                raise ValueError(f"invalid keyword pattern for emergency_type={emergency_type}") from error

    def classifier_required_departments(self, call: EmergencyCall) -> list[str]:
        if call.requested_department and call.requested_department.strip():
            return [call.requested_department.strip()]

        emergency_type = call.emergency_type.strip().lower()
        emergency_type = self._TYPE_ALIASES.get(emergency_type, emergency_type)

        departments: list[str] = []
        if emergency_type in self._type_departments:
            departments.append(self._type_departments[emergency_type])
        elif emergency_type in self._compiled_rules:
            departments.append(self._classifier_match_description(emergency_type, call.description))
        else:
            departments.append(self._police_name)

        if (call.weapons_involved or call.suspects_on_scene or call.severity == "critical") and (
            self._police_name not in departments
        ):
            departments.append(self._police_name)
        if (call.injuries_reported or call.hazardous_materials or call.fire_involved) and (
            self._fire_name not in departments
        ):
            departments.append(self._fire_name)

        logger.debug("Classified call %s as %s", call.call_id, ", ".join(departments))
        return departments

    def _classifier_match_description(self, emergency_type: str, description: str) -> str:
        lowered_description = description.lower()
        for pattern, department_name in self._compiled_rules[emergency_type]:
            if pattern.search(lowered_description):
                return department_name
        return self._keyword_fallbacks.get(emergency_type, self._police_name)
