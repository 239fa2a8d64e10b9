"""Files service: creation, retrieval and visibility of the file tree."""

import base64
import binascii
import uuid
from datetime import datetime, timezone

from files_manager.core.files.access import can_read
from files_manager.core.files.blobs import BlobStore, derivative_key, generate_blob_key
from files_manager.core.files.content_types import guess_content_type
from files_manager.core.files.schemas import CreateFileRequest, FileKind, FileRecord
from files_manager.core.files.store import FilesStore
from files_manager.core.jobs.queue import JobQueue
from files_manager.core.jobs.schemas import THUMBNAIL_WIDTHS, DerivativeJob
from files_manager.errors import (
    InvalidArgument,
    InvalidOperation,
    NotFound,
    StorageFailure,
    Unauthorized,
)
from files_manager.observability.logging import get_logger
from files_manager.observability.metrics import metrics_registry
from files_manager.storage.database import DatabaseManager
from files_manager.storage.models import ROOT_PARENT_ID, FileModel

logger = get_logger(__name__)

PAGE_SIZE = 20


def generate_file_id() -> str:
    """Generate a unique file ID."""
    return f"file_{uuid.uuid4().hex[:24]}"


def _decode_payload(payload: str) -> bytes:
    # MIME encoders wrap base64 at 76 columns
    try:
        return base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgument("payload") from e


class FilesService:
    """Service for managing the file tree and its content.

    Handles:
    - Validated creation of folders, files and images
    - Blob persistence and thumbnail job dispatch
    - Access-controlled metadata and content retrieval
    - Visibility toggling by the owner
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        blob_store: BlobStore,
        job_queue: JobQueue,
        *,
        page_size: int = PAGE_SIZE,
    ):
        self._db_manager = db_manager
        self._blobs = blob_store
        self._queue = job_queue
        self._page_size = page_size

    async def create(
        self,
        owner_id: str | None,
        request: CreateFileRequest,
    ) -> FileRecord:
        """Create a folder, file or image.

        The blob is written before the metadata insert that references it,
        and the thumbnail job is enqueued only once the insert is committed.
        A crash in between can leave an unreferenced blob, never a record
        pointing at missing content.

        Args:
            owner_id: Resolved identity of the caller
            request: Create input

        Returns:
            The created FileRecord

        Raises:
            Unauthorized: No owner was resolved
            InvalidArgument: The first invalid field, checked in a fixed order
            StorageFailure: The blob could not be written; nothing was inserted
        """
        if not owner_id:
            raise Unauthorized()

        if not request.name:
            raise InvalidArgument("name")
        if request.kind not in {kind.value for kind in FileKind}:
            raise InvalidArgument("kind")
        kind = FileKind(request.kind)
        if kind != FileKind.FOLDER and not request.payload:
            raise InvalidArgument("payload")
        content = _decode_payload(request.payload) if kind != FileKind.FOLDER else None

        parent_id = request.parent_id
        if parent_id != ROOT_PARENT_ID:
            async with self._db_manager.session() as session:
                parent = await FilesStore(session).find_one(parent_id, owner_id=owner_id)
            if parent is None:
                raise InvalidArgument("parent missing")
            if parent.kind != FileKind.FOLDER.value:
                raise InvalidArgument("parent not folder")

        blob_key = None
        if content is not None:
            blob_key = generate_blob_key()
            try:
                await self._blobs.write(blob_key, content)
            except ValueError as e:
                # Oversized payload
                raise InvalidArgument("payload") from e
            except OSError as e:
                logger.error("Blob write failed", owner_id=owner_id, error=str(e))
                metrics_registry.record_upload(kind.value, "storage_failure")
                raise StorageFailure() from e

        now = datetime.now(timezone.utc)
        async with self._db_manager.session() as session:
            file_model = await FilesStore(session).insert(
                FileModel(
                    id=generate_file_id(),
                    owner_id=owner_id,
                    name=request.name,
                    kind=kind.value,
                    parent_id=parent_id,
                    is_public=request.is_public,
                    blob_key=blob_key,
                    created_at=now,
                    updated_at=now,
                )
            )
            record = FileRecord.model_validate(file_model)

        if kind == FileKind.IMAGE:
            await self._queue.enqueue(
                DerivativeJob(file_id=record.id, owner_id=owner_id)
            )

        metrics_registry.record_upload(kind.value, "created")
        logger.info(
            "File created",
            file_id=record.id,
            owner_id=owner_id,
            kind=kind.value,
            parent_id=parent_id,
        )
        return record

    async def get(self, file_id: str, requester_id: str | None = None) -> FileRecord:
        """Get file metadata by ID.

        Raises:
            NotFound: The file is missing or not readable by ``requester_id``
        """
        async with self._db_manager.session() as session:
            file_model = await FilesStore(session).find_one(file_id)
        if file_model is None:
            raise NotFound()

        record = FileRecord.model_validate(file_model)
        if not can_read(requester_id, record):
            raise NotFound()
        return record

    async def get_content(
        self,
        file_id: str,
        requester_id: str | None = None,
        width: int | None = None,
    ) -> tuple[bytes, str]:
        """Get file content, or one of its size variants.

        Widths outside the generated set are ignored and the original is
        served. A variant the worker has not produced yet is NotFound.

        Returns:
            Tuple of (content, content type)

        Raises:
            NotFound: Missing, forbidden, or content not (yet) available
            InvalidOperation: The file is a folder
        """
        record = await self.get(file_id, requester_id)
        if record.kind == FileKind.FOLDER or record.blob_key is None:
            raise InvalidOperation("A folder doesn't have content")

        if width is not None and width in THUMBNAIL_WIDTHS:
            key = derivative_key(record.blob_key, width)
            variant = str(width)
        else:
            key = record.blob_key
            variant = "original"

        try:
            content = await self._blobs.read(key)
        except OSError as e:
            logger.info(
                "Content unavailable", file_id=file_id, variant=variant, error=str(e)
            )
            metrics_registry.record_content_read(variant, "not_found")
            raise NotFound() from e

        metrics_registry.record_content_read(variant, "ok")
        return content, guess_content_type(record.name)

    async def set_visibility(
        self,
        file_id: str,
        owner_id: str | None,
        is_public: bool,
    ) -> FileRecord:
        """Publish or unpublish a file owned by ``owner_id``.

        Raises:
            Unauthorized: No owner was resolved
            NotFound: No such file under this owner
        """
        if not owner_id:
            raise Unauthorized()

        async with self._db_manager.session() as session:
            file_model = await FilesStore(session).update_visibility(
                file_id, owner_id, is_public
            )
            if file_model is None:
                raise NotFound()
            record = FileRecord.model_validate(file_model)

        logger.info(
            "Visibility changed", file_id=file_id, owner_id=owner_id, is_public=is_public
        )
        return record

    async def publish(self, file_id: str, owner_id: str | None) -> FileRecord:
        return await self.set_visibility(file_id, owner_id, True)

    async def unpublish(self, file_id: str, owner_id: str | None) -> FileRecord:
        return await self.set_visibility(file_id, owner_id, False)

    async def list_files(
        self,
        owner_id: str | None,
        parent_id: str = ROOT_PARENT_ID,
        page: int = 0,
    ) -> list[FileRecord]:
        """List an owner's files directly under ``parent_id``.

        Args:
            owner_id: Resolved identity of the caller
            parent_id: Folder ID, or the root sentinel
            page: Zero-based page index

        Raises:
            Unauthorized: No owner was resolved
        """
        if not owner_id:
            raise Unauthorized()

        async with self._db_manager.session() as session:
            files = await FilesStore(session).list_children(
                owner_id,
                parent_id,
                limit=self._page_size,
                offset=max(page, 0) * self._page_size,
            )
            return [FileRecord.model_validate(f) for f in files]
