"""Typed interfaces for job-layer orchestration responsibilities."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class JobExecutionResult:
    """Result contract for one named job execution.

    Attributes:
        job_name: Job identifier.
        status: Final execution state (`success` or `failed`).
    """

    job_name: str
    status: str


class JobOrchestratorPort(Protocol):
    """Port definition for running council jobs on demand."""

    def job_supported_names(self) -> tuple[str, ...]:
        """Return the set of job names this orchestrator can execute.

        Returns:
            tuple[str, ...]: Deterministic list of supported job names.

        Raises:
            RuntimeError: Raised when supported job metadata is unavailable.
        """

    def job_execute(self, job_name: str) -> JobExecutionResult:
        """Execute one named job.

        Args:
            job_name: Job name.

        Returns:
            JobExecutionResult: Final execution status payload.

        Raises:
            ValueError: Raised when the job name is unsupported.
        """


class TickerPort(Protocol):
    """Port definition for the cadence driving the orchestrator loop."""

    def ticker_wait(self, interval_seconds: float) -> bool:
        """Block until the next tick.

        Args:
            interval_seconds: Requested delay before the next tick.

        Returns:
            bool: `False` when the loop must stop instead of ticking.

        Raises:
            ValueError: Raised when the interval is negative.
        """

    def ticker_stop(self) -> None:
        """Make the current and every later wait return `False`."""
