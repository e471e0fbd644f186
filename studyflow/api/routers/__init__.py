"""API routers."""

from . import artifacts_router, projects_router

__all__ = ["artifacts_router", "projects_router"]
