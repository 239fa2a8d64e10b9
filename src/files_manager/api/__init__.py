"""API routers for Files Manager."""

from files_manager.api.files import router as files_router

__all__ = ["files_router"]
