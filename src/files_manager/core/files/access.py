"""Read access decisions for files."""

from files_manager.core.files.schemas import FileRecord


def can_read(requester_id: str | None, file: FileRecord) -> bool:
    """Return True if ``requester_id`` may read ``file``.

    Evaluation is flat: a folder's visibility says nothing about its
    descendants and vice versa.
    """
    if file.is_public:
        return True
    return requester_id is not None and requester_id == file.owner_id
