"""Persistent storage for file metadata."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from files_manager.storage.models import FileModel


class FilesStore:
    """Database operations for file records.

    Lookups are scoped by id and, where the caller acts as an owner, by owner.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_one(
        self,
        file_id: str,
        owner_id: str | None = None,
    ) -> FileModel | None:
        """Get a file by ID, optionally restricted to one owner.

        Args:
            file_id: File ID to fetch
            owner_id: If given, only a file owned by this user matches

        Returns:
            FileModel if found, None otherwise
        """
        query = select(FileModel).where(FileModel.id == file_id)
        if owner_id is not None:
            query = query.where(FileModel.owner_id == owner_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def insert(self, file_model: FileModel) -> FileModel:
        self._session.add(file_model)
        await self._session.flush()
        return file_model

    async def update_visibility(
        self,
        file_id: str,
        owner_id: str,
        is_public: bool,
    ) -> FileModel | None:
        """Set ``is_public`` on a file owned by ``owner_id``.

        Returns:
            Updated FileModel if found, None otherwise
        """
        file_model = await self.find_one(file_id, owner_id=owner_id)
        if file_model is None:
            return None

        file_model.is_public = is_public
        file_model.updated_at = datetime.now(timezone.utc)
        await self._session.flush()
        return file_model

    async def list_children(
        self,
        owner_id: str,
        parent_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[FileModel]:
        """List an owner's files directly under ``parent_id``, oldest first."""
        result = await self._session.execute(
            select(FileModel)
            .where(
                FileModel.owner_id == owner_id,
                FileModel.parent_id == parent_id,
            )
            .order_by(FileModel.created_at.asc(), FileModel.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())
