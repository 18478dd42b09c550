"""Version 1 of the HTTP API."""

from .endpoints import auth_router

__all__ = ["auth_router"]
