"""Routing table router exposing edges, fallbacks and chain resolution."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from city_services.routing import RoutingTable


def api_create_routing_router(routing_table: RoutingTable) -> APIRouter:
    """Create router for routing table inspection.

    Args:
        routing_table: Council-side routing table.

    Returns:
        APIRouter: Router exposing `/routing` endpoints.

    Raises:
        ValueError: Raised when routing_table is None.
    """

    if routing_table is None:
        raise ValueError("routing_table must not be None")

    router = APIRouter(prefix="/routing", tags=["routing"])

    @router.get("")
    def api_routing_table() -> JSONResponse:
        """Return routing edges, fallbacks and the live set.

        Returns:
            JSONResponse: Routing table payload.

        Raises:
            RuntimeError: This endpoint does not raise runtime errors.
        """

        payload = {
            "edges": [
                {"source": entry.source_name, "target": entry.target_name} for entry in routing_table.routing_edges()
            ],
            "fallbacks": [
                {"name": entry.name, "fallback": entry.fallback_name} for entry in routing_table.routing_fallbacks()
            ],
            "live": sorted(routing_table.routing_live_names()),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/resolve/{department_name}")
    def api_routing_resolve(department_name: str) -> JSONResponse:
        """Resolve where work addressed to one department goes.

        Args:
            department_name: Name work was addressed to.

        Returns:
            JSONResponse: Resolution payload with the resolved target and its liveness.

        Raises:
            RuntimeError: This endpoint does not raise runtime errors.
        """

        resolved_name = routing_table.routing_resolve(department_name)
        payload = {
            "department": department_name,
            "resolved": resolved_name,
            "live": routing_table.routing_is_live(resolved_name),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
