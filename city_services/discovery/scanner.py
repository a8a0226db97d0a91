"""Department registry scanning with deterministic diffing between scans."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from city_services.adapters import DepartmentTemplateSourcePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryScanResult:
    """Outcome of one registry scan compared with the previous scan.

    Attributes:
        department_names: Every deployable department name, sorted.
        added_names: Names not present in the previous scan.
        removed_names: Names present in the previous scan but missing now.
    """

    department_names: tuple[str, ...]
    added_names: tuple[str, ...]
    removed_names: tuple[str, ...]

    def scan_has_changes(self) -> bool:
        """Return whether the scan differs from the previous one."""

        return bool(self.added_names or self.removed_names)


class RegistryScanner:
    """Enumerate department identities that are currently deployable.

    The scanner has no health semantics; it only reports which names exist
    in the template store and how that set changed since the last scan.
    """

    def __init__(self, template_source: DepartmentTemplateSourcePort):
        """Initialize registry scanner.

        Args:
            template_source: Declarative department-template loader.

        Raises:
            ValueError: Raised when template_source is None.
        """

        if template_source is None:
            raise ValueError("template_source must not be None")
        self._template_source = template_source
        self._known_names: tuple[str, ...] = ()
        self._lock = threading.Lock()

    def registry_scan(self) -> RegistryScanResult:
        """Enumerate deployable departments and diff against the previous scan.

        Returns:
            RegistryScanResult: Current names plus added/removed names.

        Raises:
            OSError: Raised when the template store cannot be read.
        """

        current_names = tuple(sorted(set(self._template_source.template_list_department_names())))
        with self._lock:
            previous_names = set(self._known_names)
            self._known_names = current_names

        added_names = tuple(name for name in current_names if name not in previous_names)
        removed_names = tuple(sorted(previous_names.difference(current_names)))
        if added_names:
            logger.info("New departments detected: %s", ", ".join(added_names))
        if removed_names:
            logger.warning("Departments removed/missing: %s", ", ".join(removed_names))
        return RegistryScanResult(
            department_names=current_names,
            added_names=added_names,
            removed_names=removed_names,
        )

    def registry_known_names(self) -> tuple[str, ...]:
        """Return the names observed by the latest scan."""

        with self._lock:
            return self._known_names

    def registry_has_template(self, department_name: str) -> bool:
        """Return whether the latest scan observed a template for a department.

        Args:
            department_name: Logical department name.

        Returns:
            bool: `True` when the department is deployable.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        with self._lock:
            return department_name.strip() in self._known_names
