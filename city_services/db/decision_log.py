"""Database service for the append-only council decision log."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from city_services.domain import DECISION_APPROVED, DECISION_DEFERRED, DECISION_REJECTED, ChangeNotification, Decision

from .interfaces import DecisionLogRecord, DecisionLogRepositoryPort

_DECISION_COLUMNS = (
    "council_decision_id, recommendation_id, recommendation_type, outcome, rationale, "
    "proposed_by, subject, change_id, change_payload, decided_at_utc"
)


class SQLAlchemyDecisionLogService(DecisionLogRepositoryPort):
    """SQLAlchemy-backed council decision log.

    Timestamps are stored as ISO-8601 UTC text so the same SQL runs on SQLite
    and PostgreSQL.
    """

    def __init__(self, engine: Engine):
        """Initialize decision log service.

        Args:
            engine: SQLAlchemy engine used for all persistence operations.

        Raises:
            ValueError: Raised when engine is None.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_decision_record(
        self,
        decision: Decision,
        proposed_by: str,
        subject: str,
        change: ChangeNotification | None = None,
    ) -> DecisionLogRecord:
        """Persist one decision, reusing the row when the recommendation was already recorded.

        Args:
            decision: Council decision.
            proposed_by: Analyzer that proposed the recommendation.
            subject: Proposed successor name or terminated department name.
            change: Broadcast change notification for approved decisions.

        Returns:
            DecisionLogRecord: Persisted row.

        Raises:
            ValueError: Raised when required inputs are blank or change is given for a non-approved decision.
            RuntimeError: Raised when persistence fails.
        """

        normalized_proposed_by = self._validate_non_empty_text(proposed_by, "proposed_by")
        normalized_subject = self._validate_non_empty_text(subject, "subject")
        if change is not None and decision.outcome != DECISION_APPROVED:
            raise ValueError("change must only be recorded for approved decisions")

        change_payload = None if change is None else json.dumps(change.notification_to_payload(), sort_keys=True)
        decided_at = decision.decided_at
        if decided_at.tzinfo is None:
            decided_at = decided_at.replace(tzinfo=timezone.utc)

        try:
            with self._engine.begin() as connection:
                existing_row = self._db_fetch_row(connection=connection, recommendation_id=decision.recommendation_id)
                if existing_row is not None:
                    return self._map_decision_record(existing_row)

                connection.execute(
                    text(
                        "INSERT INTO council_decision ("
                        "recommendation_id, recommendation_type, outcome, rationale, proposed_by, subject, "
                        "change_id, change_payload, decided_at_utc"
                        ") VALUES ("
                        ":recommendation_id, :recommendation_type, :outcome, :rationale, :proposed_by, :subject, "
                        ":change_id, :change_payload, :decided_at_utc"
                        ")"
                    ),
                    {
                        "recommendation_id": decision.recommendation_id,
                        "recommendation_type": decision.recommendation_type,
                        "outcome": decision.outcome,
                        "rationale": decision.rationale,
                        "proposed_by": normalized_proposed_by,
                        "subject": normalized_subject,
                        "change_id": None if change is None else change.change_id,
                        "change_payload": change_payload,
                        "decided_at_utc": decided_at.astimezone(timezone.utc).isoformat(),
                    },
                )

                created_row = self._db_fetch_row(connection=connection, recommendation_id=decision.recommendation_id)
                if created_row is None:
                    raise LookupError("council decision not found after insert")
                return self._map_decision_record(created_row)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to record council decision") from error

    def db_decision_list(self, limit: int, offset: int, outcome: str | None = None) -> list[DecisionLogRecord]:
        """List decisions newest first.

        Args:
            limit: Maximum number of rows.
            offset: Number of rows to skip.
            outcome: Optional outcome filter.

        Returns:
            list[DecisionLogRecord]: Ordered decision rows.

        Raises:
            ValueError: Raised when limit, offset or outcome are invalid.
            RuntimeError: Raised when database read fails.
        """

        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if outcome is not None and outcome not in {DECISION_APPROVED, DECISION_REJECTED, DECISION_DEFERRED}:
            raise ValueError("outcome must be one of: approved, rejected, deferred")

        where_clause = "" if outcome is None else "WHERE outcome = :outcome "
        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        f"SELECT {_DECISION_COLUMNS} "
                        "FROM council_decision "
                        f"{where_clause}"
                        "ORDER BY decided_at_utc DESC, council_decision_id DESC "
                        "LIMIT :limit OFFSET :offset"
                    ),
                    {"limit": limit, "offset": offset, "outcome": outcome},
                ).mappings().all()
                return [self._map_decision_record(row) for row in rows]
        except SQLAlchemyError as error:
            raise RuntimeError("failed to list council decisions") from error

    def db_decision_get(self, recommendation_id: str) -> DecisionLogRecord | None:
        """Fetch the decision recorded for one recommendation.

        Args:
            recommendation_id: Recommendation identifier.

        Returns:
            DecisionLogRecord | None: Matching row or None.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                row = self._db_fetch_row(connection=connection, recommendation_id=recommendation_id)
                return None if row is None else self._map_decision_record(row)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to fetch council decision") from error

    def _db_fetch_row(self, connection, recommendation_id: str) -> Any:
        return connection.execute(
            text(f"SELECT {_DECISION_COLUMNS} FROM council_decision WHERE recommendation_id = :recommendation_id"),
            {"recommendation_id": recommendation_id},
        ).mappings().first()

    def _map_decision_record(self, row: Any) -> DecisionLogRecord:
        """Map SQLAlchemy row mapping to a typed decision record.

        Args:
            row: SQLAlchemy mapping row.

        Returns:
            DecisionLogRecord: Typed decision record.

        Raises:
            TypeError: Raised when the stored change payload is not a JSON object.
        """

        change_payload = row["change_payload"]
        if change_payload is not None:
            change_payload = json.loads(change_payload)
            if not isinstance(change_payload, dict):
                raise TypeError("council_decision.change_payload must be a JSON object when present")

        decided_at = row["decided_at_utc"]
        if isinstance(decided_at, str):
            decided_at = datetime.fromisoformat(decided_at)

        return DecisionLogRecord(
            council_decision_id=int(row["council_decision_id"]),
            recommendation_id=row["recommendation_id"],
            recommendation_type=row["recommendation_type"],
            outcome=row["outcome"],
            rationale=row["rationale"],
            proposed_by=row["proposed_by"],
            subject=row["subject"],
            change_id=row["change_id"],
            change_payload=change_payload,
            decided_at_utc=decided_at,
        )

    def _validate_non_empty_text(self, value: str, field_name: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError(f"{field_name} must not be blank")
        return stripped_value
