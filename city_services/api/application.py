"""FastAPI application factory for the council inspection API."""

from fastapi import FastAPI

from city_services.config import CitySettings
from city_services.db import DatabaseHealthPort, DecisionLogRepositoryPort
from city_services.routing import RoutingTable
from city_services.supervision import ProcessSupervisor

from .routers import (
    api_create_decisions_router,
    api_create_departments_router,
    api_create_health_router,
    api_create_routing_router,
)


def create_api_application(
    settings: CitySettings,
    db_health_service: DatabaseHealthPort,
    supervisor: ProcessSupervisor,
    routing_table: RoutingTable,
    decision_log: DecisionLogRepositoryPort,
) -> FastAPI:
    """Create the FastAPI application instance for the council.

    Args:
        settings: Validated application settings used for runtime metadata.
        db_health_service: Database health service used by health endpoints.
        supervisor: Process supervisor for department listings.
        routing_table: Council-side routing table for routing inspection.
        decision_log: Decision log repository for list/detail APIs.

    Returns:
        FastAPI: Framework application instance.

    Raises:
        ValueError: Raised when a router dependency is None.
    """
    application = FastAPI(title="City Services Council")

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        return {
            "service": settings.council_service_name,
            "status": "ready",
            "environment": settings.environment_name,
        }

    application.include_router(api_create_health_router(db_health_service=db_health_service, supervisor=supervisor))
    application.include_router(api_create_departments_router(supervisor=supervisor))
    application.include_router(api_create_routing_router(routing_table=routing_table))
    application.include_router(api_create_decisions_router(settings=settings, decision_log=decision_log))

    return application
