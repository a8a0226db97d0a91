"""Health endpoint router composition for council and decision log checks."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from city_services.db import DatabaseHealthPort
from city_services.supervision import ProcessSupervisor


def api_create_health_router(db_health_service: DatabaseHealthPort, supervisor: ProcessSupervisor) -> APIRouter:
    """Create health-check router with decision log connectivity and department counts.

    Args:
        db_health_service: DB-layer health service interface.
        supervisor: Process supervisor providing department health counts.

    Returns:
        APIRouter: Router exposing `/health` endpoint.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if db_health_service is None:
        raise ValueError("db_health_service must not be None")
    if supervisor is None:
        raise ValueError("supervisor must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return council and decision log health state.

        Returns:
            JSONResponse: Health payload, 503 when the decision log is unreachable.

        Raises:
            ConnectionError: Raised when database health check fails.
        """

        departments = supervisor.supervisor_health_summary()
        try:
            db_health = db_health_service.db_check_health()
            payload = {
                "status": "ok",
                "council": "up",
                "database": db_health.status,
                "detail": db_health.detail,
                "target": db_health_service.db_connection_label(),
                "departments": departments,
            }
            return JSONResponse(content=payload, status_code=status.HTTP_200_OK)
        except ConnectionError as error:
            payload = {
                "status": "degraded",
                "council": "up",
                "database": "down",
                "detail": str(error),
                "target": db_health_service.db_connection_label(),
                "departments": departments,
            }
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    return router
