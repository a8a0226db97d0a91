"""API router package for endpoint composition."""

from .decisions import api_create_decisions_router
from .departments import api_create_departments_router
from .health import api_create_health_router
from .routing import api_create_routing_router

__all__ = [
	"api_create_decisions_router",
	"api_create_departments_router",
	"api_create_health_router",
	"api_create_routing_router",
]
