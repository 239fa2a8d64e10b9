"""Files API router - /files endpoints."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Header, Query, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from files_manager.core.files.schemas import CreateFileRequest, FileRecord
from files_manager.core.files.service import FilesService
from files_manager.core.sessions.store import SessionStore
from files_manager.errors import Unauthorized
from files_manager.storage.models import ROOT_PARENT_ID

router = APIRouter(prefix="/files", tags=["files"])


# -----------------------------------------------------------------------------
# Request/Response Models
# -----------------------------------------------------------------------------


class FileObject(BaseModel):
    """Response object for file operations."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(serialization_alias="userId")
    name: str
    type: str
    is_public: bool = Field(serialization_alias="isPublic")
    parent_id: str = Field(serialization_alias="parentId")

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileObject":
        return cls(
            id=record.id,
            user_id=record.owner_id,
            name=record.name,
            type=record.kind.value,
            is_public=record.is_public,
            parent_id=record.parent_id,
        )


# -----------------------------------------------------------------------------
# Dependency Injection
# -----------------------------------------------------------------------------


def get_files_service(request: Request) -> FilesService:
    """Get FilesService from app state."""
    return request.app.state.files_service


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


async def get_requester_id(
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    x_token: Annotated[str | None, Header()] = None,
) -> str | None:
    """Resolve the X-Token header to a user id, if any."""
    if not x_token:
        return None
    return await sessions.get(x_token)


async def require_user_id(
    requester_id: Annotated[str | None, Depends(get_requester_id)],
) -> str:
    if requester_id is None:
        raise Unauthorized()
    return requester_id


FilesServiceDep = Annotated[FilesService, Depends(get_files_service)]
RequesterIdDep = Annotated[str | None, Depends(get_requester_id)]
UserIdDep = Annotated[str, Depends(require_user_id)]


def _dump(record: FileRecord) -> dict:
    return FileObject.from_record(record).model_dump(by_alias=True)


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_file(
    service: FilesServiceDep,
    user_id: UserIdDep,
    body: Annotated[CreateFileRequest, Body()],
) -> dict:
    """Create a folder, file or image."""
    record = await service.create(user_id, body)
    return _dump(record)


@router.get("")
async def list_files(
    service: FilesServiceDep,
    user_id: UserIdDep,
    parent_id: Annotated[str, Query(alias="parentId")] = ROOT_PARENT_ID,
    page: Annotated[int, Query(ge=0)] = 0,
) -> list[dict]:
    """List the caller's files under a folder, 20 per page."""
    records = await service.list_files(user_id, parent_id, page)
    return [_dump(record) for record in records]


@router.get("/{file_id}")
async def get_file(
    file_id: str,
    service: FilesServiceDep,
    user_id: UserIdDep,
) -> dict:
    """Retrieve file metadata."""
    record = await service.get(file_id, user_id)
    return _dump(record)


@router.put("/{file_id}/publish")
async def publish_file(
    file_id: str,
    service: FilesServiceDep,
    user_id: UserIdDep,
) -> dict:
    record = await service.publish(file_id, user_id)
    return _dump(record)


@router.put("/{file_id}/unpublish")
async def unpublish_file(
    file_id: str,
    service: FilesServiceDep,
    user_id: UserIdDep,
) -> dict:
    record = await service.unpublish(file_id, user_id)
    return _dump(record)


@router.get("/{file_id}/data")
async def get_file_data(
    file_id: str,
    service: FilesServiceDep,
    requester_id: RequesterIdDep,
    size: Annotated[str | None, Query()] = None,
) -> Response:
    """Download file content, or a thumbnail when ``size`` is 100, 250 or 500."""
    width = int(size) if size is not None and size.isdigit() else None
    content, content_type = await service.get_content(file_id, requester_id, width)
    return Response(content=content, media_type=content_type)
