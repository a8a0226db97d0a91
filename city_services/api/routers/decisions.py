"""Council decision log router with paged list and detail endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from city_services.config import CitySettings
from city_services.db import DecisionLogRecord, DecisionLogRepositoryPort
from city_services.domain import DECISION_APPROVED, DECISION_DEFERRED, DECISION_REJECTED


def api_create_decisions_router(settings: CitySettings, decision_log: DecisionLogRepositoryPort) -> APIRouter:
    """Create decision log router with list/detail endpoints.

    Args:
        settings: Runtime settings used for pagination defaults.
        decision_log: DB-layer decision log repository.

    Returns:
        APIRouter: Router exposing `/decisions` endpoints.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if decision_log is None:
        raise ValueError("decision_log must not be None")

    router = APIRouter(prefix="/decisions", tags=["decisions"])

    @router.get("")
    def api_decision_list(
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
        outcome: str | None = Query(default=None),
    ) -> JSONResponse:
        """Return council decisions ordered by latest first.

        Args:
            limit: Max rows to return.
            offset: Rows to skip.
            outcome: Optional outcome filter.

        Returns:
            JSONResponse: Decision list payload.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        normalized_outcome = None if outcome is None else outcome.strip().lower()
        if normalized_outcome is not None and normalized_outcome not in {
            DECISION_APPROVED,
            DECISION_REJECTED,
            DECISION_DEFERRED,
        }:
            payload = {
                "status": "error",
                "code": "INVALID_OUTCOME",
                "message": f"unsupported outcome={normalized_outcome}",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)

        applied_limit = min(limit, settings.api_max_limit)
        decision_rows = decision_log.db_decision_list(limit=applied_limit, offset=offset, outcome=normalized_outcome)
        payload = {
            "items": [api_serialize_decision_record(decision_record) for decision_record in decision_rows],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(decision_rows),
            },
            "filters": {} if normalized_outcome is None else {"outcome": normalized_outcome},
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/{recommendation_id}")
    def api_decision_detail(recommendation_id: str) -> JSONResponse:
        """Return the decision recorded for one recommendation.

        Args:
            recommendation_id: Recommendation identifier.

        Returns:
            JSONResponse: Decision payload or 404 when absent.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        decision_record = decision_log.db_decision_get(recommendation_id=recommendation_id)
        if decision_record is None:
            payload = {
                "status": "error",
                "message": "decision not found",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_404_NOT_FOUND)
        return JSONResponse(content=api_serialize_decision_record(decision_record), status_code=status.HTTP_200_OK)

    return router


def api_serialize_decision_record(decision_record: DecisionLogRecord) -> dict[str, object]:
    """Serialize typed decision row to JSON response payload.

    Args:
        decision_record: Typed decision log record.

    Returns:
        dict[str, object]: JSON-serializable decision payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return {
        "council_decision_id": decision_record.council_decision_id,
        "recommendation_id": decision_record.recommendation_id,
        "recommendation_type": decision_record.recommendation_type,
        "outcome": decision_record.outcome,
        "rationale": decision_record.rationale,
        "proposed_by": decision_record.proposed_by,
        "subject": decision_record.subject,
        "change_id": decision_record.change_id,
        "change": decision_record.change_payload,
        "decided_at_utc": decision_record.decided_at_utc.isoformat(),
    }
