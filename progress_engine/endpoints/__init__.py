"""Endpoints HTTP de estado del monitor."""

from .status import create_app, router as status_router

__all__ = ["create_app", "status_router"]
