"""Typed request/response structures for file operations."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from files_manager.storage.models import ROOT_PARENT_ID


class FileKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"
    IMAGE = "image"


class FileRecord(BaseModel):
    """A File as seen by callers of the service."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    kind: FileKind
    parent_id: str = ROOT_PARENT_ID
    is_public: bool = False
    blob_key: str | None = None
    created_at: datetime
    updated_at: datetime


class CreateFileRequest(BaseModel):
    """Input of a create call.

    Fields are accepted loosely here so that the service can report the first
    offending field in a fixed order. Aliases match the HTTP body
    (``type``, ``parentId``, ``isPublic``, ``data``).
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    kind: str | None = Field(default=None, alias="type")
    payload: str | None = Field(default=None, alias="data")
    parent_id: str = Field(default=ROOT_PARENT_ID, alias="parentId")
    is_public: bool = Field(default=False, alias="isPublic")

    @field_validator("parent_id", mode="before")
    @classmethod
    def _normalize_parent_id(cls, value: Any) -> str:
        # The root may arrive as integer 0, "0" or be omitted
        if value is None or value == "" or (value == 0 and not isinstance(value, bool)):
            return ROOT_PARENT_ID
        return str(value)
