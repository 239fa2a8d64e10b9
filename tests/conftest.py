"""Shared fixtures: a real SQLite database, a temporary blob root and the service."""

import base64
import io

import pytest
from PIL import Image

from files_manager.config import SqliteStorageConfig
from files_manager.core.files.blobs import LocalBlobStore
from files_manager.core.files.service import FilesService
from files_manager.core.jobs.queue import InMemoryJobQueue
from files_manager.core.jobs.worker import DerivativeWorker
from files_manager.storage.database import init_database


def make_png(width: int = 800, height: int = 600) -> bytes:
    """Encode a small two-colour PNG."""
    image = Image.new("RGB", (width, height), color=(200, 30, 30))
    image.paste((30, 30, 200), (0, 0, width // 2, height))
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_payload(png_bytes) -> str:
    return base64.b64encode(png_bytes).decode()


@pytest.fixture
async def db_manager(tmp_path):
    """Create a SQLite database in a temporary directory."""
    manager = await init_database(SqliteStorageConfig(db_path=str(tmp_path / "test.db")))
    yield manager
    await manager.close()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    # Deliberately not created yet: writes must create the root
    return LocalBlobStore(base_path=tmp_path / "blobs")


@pytest.fixture
def job_queue():
    return InMemoryJobQueue()


@pytest.fixture
def files_service(db_manager, blob_store, job_queue) -> FilesService:
    return FilesService(db_manager=db_manager, blob_store=blob_store, job_queue=job_queue)


@pytest.fixture
def worker(db_manager, blob_store, job_queue) -> DerivativeWorker:
    return DerivativeWorker(
        db_manager,
        blob_store,
        job_queue,
        max_attempts=3,
        retry_base_delay=0.0,
        poll_interval=0.05,
    )
