"""Storage layer for Files Manager."""

from files_manager.storage.database import DatabaseManager, init_database
from files_manager.storage.models import (
    ROOT_PARENT_ID,
    Base,
    DerivativeJobModel,
    FileModel,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "DerivativeJobModel",
    "FileModel",
    "ROOT_PARENT_ID",
    "init_database",
]
