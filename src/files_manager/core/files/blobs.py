"""Blob storage backends for raw file content.

A blob is addressed by an opaque key. Derivatives live next to their
original under ``<key>_<width>``.
"""

import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import BaseModel

from files_manager.config import LocalBlobStorageConfig
from files_manager.observability.logging import get_logger

logger = get_logger(__name__)


def generate_blob_key() -> str:
    """Generate a unique, opaque blob key."""
    return uuid.uuid4().hex


def derivative_key(blob_key: str, width: int) -> str:
    """Key of the ``width`` variant of ``blob_key``."""
    return f"{blob_key}_{width}"


class BlobMetadata(BaseModel):
    """Metadata for a stored blob."""

    key: str
    size: int


class BlobStore(ABC):
    """Abstract base class for blob storage backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend (create directories, etc.)."""
        ...

    @abstractmethod
    async def write(self, key: str, content: bytes) -> BlobMetadata:
        """Store ``content`` under ``key``, replacing any previous content.

        Readers never observe a partially written blob.

        Raises:
            ValueError: If the key is malformed or the content is too large
            OSError: If the underlying storage fails
        """
        ...

    @abstractmethod
    async def read(self, key: str) -> bytes:
        """Retrieve blob content.

        Raises:
            FileNotFoundError: If no blob exists under ``key``
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...


class LocalBlobStore(BlobStore):
    """Local filesystem blob storage.

    One file per key directly under ``base_path``.
    """

    def __init__(
        self,
        base_path: Path | str,
        max_file_size_bytes: int = 512 * 1024 * 1024,
    ):
        self._base_path = Path(base_path)
        self._max_file_size = max_file_size_bytes

    @property
    def base_path(self) -> Path:
        return self._base_path

    async def initialize(self) -> None:
        """Create base directory if it doesn't exist."""
        await aiofiles.os.makedirs(self._base_path, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        """Convert blob key to filesystem path."""
        # Keys are flat names, never paths
        if not key or key.startswith(".") or "/" in key or "\\" in key:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self._base_path / key

    async def write(self, key: str, content: bytes) -> BlobMetadata:
        if len(content) > self._max_file_size:
            raise ValueError(
                f"Content size ({len(content)}) exceeds maximum ({self._max_file_size})"
            )

        file_path = self._key_to_path(key)
        await aiofiles.os.makedirs(self._base_path, exist_ok=True)

        # Write beside the target, then atomically swap it in
        tmp_path = self._base_path / f".{key}.{uuid.uuid4().hex}.tmp"
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, file_path)
        except OSError:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise

        logger.debug("Blob written", key=key, size=len(content))
        return BlobMetadata(key=key, size=len(content))

    async def read(self, key: str) -> bytes:
        file_path = self._key_to_path(key)
        if not await aiofiles.os.path.isfile(file_path):
            raise FileNotFoundError(f"Blob not found: {key}")

        async with aiofiles.open(file_path, "rb") as f:
            return await f.read()

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self._key_to_path(key))


def create_blob_store(config: LocalBlobStorageConfig) -> BlobStore:
    """Factory function to create a blob store from config."""
    return LocalBlobStore(
        base_path=config.base_path,
        max_file_size_bytes=config.max_file_size_mb * 1024 * 1024,
    )
