"""API package for the council inspection surface."""

from .application import create_api_application

__all__ = ["create_api_application"]
