"""Typed interfaces and contracts for department supervision."""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class SupervisorConfig:
    """Restart and health policy for the process supervisor.

    Attributes:
        restart_failure_threshold: Consecutive failures of either kind that trigger a restart.
        max_restarts: Restart attempts allowed before permanent failure.
        health_silence_window_seconds: Time without a reply counted as a health failure.
    """

    restart_failure_threshold: int = 3
    max_restarts: int = 3
    health_silence_window_seconds: float = 60.0


@dataclass(frozen=True)
class SupervisionTickResult:
    """Outcome of one supervision cycle.

    Attributes:
        checked_names: Departments that received a new health-check request.
        restarted_names: Departments with a successful restart spawn.
        failed_restart_names: Departments whose restart spawn raised.
        permanently_failed_names: Departments demoted to permanent failure this tick.
        events: Structured lifecycle events captured during the tick.
    """

    checked_names: tuple[str, ...] = ()
    restarted_names: tuple[str, ...] = ()
    failed_restart_names: tuple[str, ...] = ()
    permanently_failed_names: tuple[str, ...] = ()
    events: list[dict[str, object]] = field(default_factory=list)


class HealthCheckSenderPort(Protocol):
    """Port for the component that emits health-check requests."""

    def health_send_check(self, department_name: str) -> str | None:
        """Emit one health-check request addressed to a department.

        Args:
            department_name: Logical department name.

        Returns:
            str | None: Check identifier, or `None` when no request was sent.

        Raises:
            RuntimeError: Implementations log transport failures instead of raising.
        """
