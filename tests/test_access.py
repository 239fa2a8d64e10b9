"""Tests for read access decisions and content type lookup."""

from datetime import datetime, timezone

import pytest

from files_manager.core.files.access import can_read
from files_manager.core.files.content_types import (
    DEFAULT_CONTENT_TYPE,
    guess_content_type,
)
from files_manager.core.files.schemas import FileKind, FileRecord


def _record(is_public: bool, kind: FileKind = FileKind.FILE) -> FileRecord:
    now = datetime.now(timezone.utc)
    return FileRecord(
        id="file_1",
        owner_id="u1",
        name="a.txt",
        kind=kind,
        is_public=is_public,
        blob_key="k",
        created_at=now,
        updated_at=now,
    )


def test_private_file_readable_only_by_owner():
    record = _record(is_public=False)
    assert can_read("u1", record)
    assert not can_read("u2", record)
    assert not can_read(None, record)


def test_public_file_readable_by_anyone():
    record = _record(is_public=True)
    assert can_read("u1", record)
    assert can_read("u2", record)
    assert can_read(None, record)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("a.txt", "text/plain"),
        ("photo.PNG", "image/png"),
        ("photo.jpeg", "image/jpeg"),
        ("archive.tar.gz", "application/gzip"),
        ("README", DEFAULT_CONTENT_TYPE),
        ("weird.xyz", DEFAULT_CONTENT_TYPE),
    ],
)
def test_guess_content_type(name, expected):
    assert guess_content_type(name) == expected
