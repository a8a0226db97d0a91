"""Typed interfaces for governance-layer collaborators."""

from typing import Protocol


class DepartmentDirectoryPort(Protocol):
    """Port for reading which departments exist and which have permanently failed."""

    def supervisor_live_names(self) -> tuple[str, ...]:
        """Return names that are valid routing targets.

        Returns:
            tuple[str, ...]: Sorted department names.

        Raises:
            RuntimeError: Raised when department state is unavailable.
        """

    def supervisor_names_with_status(self, status: str) -> tuple[str, ...]:
        """Return names currently in one lifecycle status.

        Args:
            status: Lifecycle status value.

        Returns:
            tuple[str, ...]: Sorted department names.

        Raises:
            RuntimeError: Raised when department state is unavailable.
        """
