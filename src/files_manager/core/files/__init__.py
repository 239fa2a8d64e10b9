"""Files core logic."""

from files_manager.core.files.access import can_read
from files_manager.core.files.blobs import BlobStore, LocalBlobStore
from files_manager.core.files.schemas import CreateFileRequest, FileKind, FileRecord
from files_manager.core.files.service import FilesService

__all__ = [
    "BlobStore",
    "CreateFileRequest",
    "FileKind",
    "FileRecord",
    "FilesService",
    "LocalBlobStore",
    "can_read",
]
