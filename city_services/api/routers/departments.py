"""Department supervision router exposing lifecycle snapshots."""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from city_services.domain import DEPARTMENT_STATUSES
from city_services.supervision import ProcessSupervisor


def api_create_departments_router(supervisor: ProcessSupervisor) -> APIRouter:
    """Create router listing supervised departments.

    Args:
        supervisor: Process supervisor owning department records.

    Returns:
        APIRouter: Router exposing `/departments` endpoints.

    Raises:
        ValueError: Raised when supervisor is None.
    """

    if supervisor is None:
        raise ValueError("supervisor must not be None")

    router = APIRouter(prefix="/departments", tags=["departments"])

    @router.get("")
    def api_department_list(department_status: str | None = Query(default=None, alias="status")) -> JSONResponse:
        """Return every supervised department, optionally filtered by status.

        Args:
            department_status: Optional lifecycle status filter.

        Returns:
            JSONResponse: Department snapshot list.

        Raises:
            RuntimeError: This endpoint does not raise runtime errors.
        """

        normalized_status = None if department_status is None else department_status.strip().lower()
        if normalized_status is not None and normalized_status not in DEPARTMENT_STATUSES:
            payload = {
                "status": "error",
                "code": "INVALID_STATUS",
                "message": f"unsupported status={normalized_status}",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)

        snapshots = supervisor.supervisor_snapshot()
        if normalized_status is not None:
            snapshots = [snapshot for snapshot in snapshots if snapshot.status == normalized_status]
        payload = {
            "items": [snapshot.snapshot_to_payload() for snapshot in snapshots],
            "summary": supervisor.supervisor_health_summary(),
            "filters": {} if normalized_status is None else {"status": normalized_status},
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/{department_name}")
    def api_department_detail(department_name: str) -> JSONResponse:
        snapshot = supervisor.supervisor_get(department_name)
        if snapshot is None:
            payload = {
                "status": "error",
                "message": "department not found",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_404_NOT_FOUND)
        return JSONResponse(content=snapshot.snapshot_to_payload(), status_code=status.HTTP_200_OK)

    return router
