"""Typed interfaces for database-layer services.

All SQL access must remain in the db package and its submodules.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from city_services.domain import ChangeNotification, Decision, HealthStatus


class DatabaseHealthPort(Protocol):
    """Port definition for database connectivity verification."""

    def db_connection_label(self) -> str:
        """Return a stable label for the active database connection target.

        Returns:
            str: Database target label for diagnostics.

        Raises:
            RuntimeError: Raised when connection metadata is unavailable.
        """

    def db_check_health(self) -> HealthStatus:
        """Check database connectivity and return deterministic health payload.

        Returns:
            HealthStatus: Database health status payload.

        Raises:
            ConnectionError: Raised when database cannot be reached.
        """


@dataclass(frozen=True)
class DecisionLogRecord:
    """Persistence model for one council decision row.

    Attributes:
        council_decision_id: Row identifier.
        recommendation_id: Identifier of the decided recommendation.
        recommendation_type: `consolidation` or `termination`.
        outcome: `approved`, `rejected` or `deferred`.
        rationale: Outcome-derived rationale.
        proposed_by: Analyzer that proposed the recommendation.
        subject: Proposed successor name or terminated department name.
        change_id: Identifier of the broadcast change, when approved.
        change_payload: Serialized change notification, when approved.
        decided_at_utc: Decision timestamp in UTC.
    """

    council_decision_id: int
    recommendation_id: str
    recommendation_type: str
    outcome: str
    rationale: str
    proposed_by: str
    subject: str
    change_id: str | None
    change_payload: dict[str, Any] | None
    decided_at_utc: datetime


class DecisionLogRepositoryPort(Protocol):
    """Port definition for the append-only council decision log."""

    def db_decision_record(
        self,
        decision: Decision,
        proposed_by: str,
        subject: str,
        change: ChangeNotification | None = None,
    ) -> DecisionLogRecord:
        """Persist one decision; recording the same recommendation again returns the existing row.

        Args:
            decision: Council decision.
            proposed_by: Analyzer that proposed the recommendation.
            subject: Proposed successor name or terminated department name.
            change: Broadcast change notification for approved decisions.

        Returns:
            DecisionLogRecord: Persisted row.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

    def db_decision_list(self, limit: int, offset: int, outcome: str | None = None) -> list[DecisionLogRecord]:
        """List decisions newest first.

        Args:
            limit: Maximum number of rows.
            offset: Number of rows to skip.
            outcome: Optional outcome filter.

        Returns:
            list[DecisionLogRecord]: Ordered decision rows.

        Raises:
            ValueError: Raised when paging values are invalid.
            RuntimeError: Raised when database read fails.
        """

    def db_decision_get(self, recommendation_id: str) -> DecisionLogRecord | None:
        """Fetch the decision recorded for one recommendation.

        Args:
            recommendation_id: Recommendation identifier.

        Returns:
            DecisionLogRecord | None: Matching row or None.

        Raises:
            RuntimeError: Raised when database read fails.
        """
