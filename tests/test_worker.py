"""Tests for thumbnail generation and the worker loop."""

import asyncio
import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image
from sqlalchemy import func, select

from files_manager.core.files.blobs import derivative_key
from files_manager.core.files.schemas import CreateFileRequest
from files_manager.core.jobs.schemas import THUMBNAIL_WIDTHS, DerivativeJob
from files_manager.core.jobs.thumbnails import render_thumbnail
from files_manager.core.jobs.worker import DerivativeWorker, WorkerPool
from files_manager.errors import TerminalJobError
from files_manager.storage.models import FileModel


async def _create_image(files_service, png_payload, owner_id="u1"):
    return await files_service.create(
        owner_id,
        CreateFileRequest(name="p.png", kind="image", payload=png_payload),
    )


def test_render_thumbnail_keeps_aspect_ratio(png_bytes):
    thumbnail = render_thumbnail(png_bytes, 250)

    with Image.open(io.BytesIO(thumbnail)) as image:
        assert image.format == "PNG"
        assert image.size == (250, 188)


def test_render_thumbnail_is_deterministic(png_bytes):
    assert render_thumbnail(png_bytes, 100) == render_thumbnail(png_bytes, 100)


def test_render_thumbnail_small_rgba_source():
    image = Image.new("RGBA", (40, 20), color=(10, 20, 30, 128))
    output = io.BytesIO()
    image.save(output, format="PNG")

    thumbnail = render_thumbnail(output.getvalue(), 10)

    with Image.open(io.BytesIO(thumbnail)) as result:
        assert result.size == (10, 5)


def test_render_thumbnail_rejects_non_images():
    with pytest.raises(TerminalJobError):
        render_thumbnail(b"definitely not an image", 100)


@pytest.mark.asyncio
async def test_process_writes_every_width(
    files_service, job_queue, worker, blob_store, png_payload
):
    created = await _create_image(files_service, png_payload)
    job = await job_queue.dequeue(timeout=1)

    written = await worker.process(job)

    assert written == [derivative_key(created.blob_key, w) for w in THUMBNAIL_WIDTHS]
    for width in THUMBNAIL_WIDTHS:
        content = await blob_store.read(derivative_key(created.blob_key, width))
        with Image.open(io.BytesIO(content)) as image:
            assert image.width == width


@pytest.mark.asyncio
async def test_process_twice_is_idempotent(
    files_service, job_queue, worker, blob_store, db_manager, png_payload
):
    created = await _create_image(files_service, png_payload)
    job = await job_queue.dequeue(timeout=1)

    await worker.process(job)
    first = {w: await blob_store.read(derivative_key(created.blob_key, w)) for w in THUMBNAIL_WIDTHS}
    await worker.process(job)
    second = {w: await blob_store.read(derivative_key(created.blob_key, w)) for w in THUMBNAIL_WIDTHS}

    assert first == second
    async with db_manager.session() as session:
        count = (await session.execute(select(func.count()).select_from(FileModel))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_missing_file_fails_terminally(worker, job_queue):
    await job_queue.enqueue(DerivativeJob(file_id="file_missing", owner_id="u1"))
    job = await job_queue.dequeue(timeout=1)

    assert await worker.handle(job) == "failed"
    assert job_queue.status(job.job_id) == "failed"
    assert job_queue.last_error(job.job_id) == "File not found"


@pytest.mark.asyncio
async def test_owner_mismatch_fails_terminally(
    files_service, job_queue, worker, png_payload
):
    created = await _create_image(files_service, png_payload)
    await job_queue.dequeue(timeout=1)
    await job_queue.enqueue(DerivativeJob(file_id=created.id, owner_id="someone_else"))
    job = await job_queue.dequeue(timeout=1)

    assert await worker.handle(job) == "failed"
    assert await job_queue.dequeue(timeout=0.01) is None


@pytest.mark.asyncio
async def test_non_image_kind_fails_terminally(files_service, job_queue, worker):
    created = await files_service.create(
        "u1", CreateFileRequest(name="a.txt", kind="file", payload="aGk=")
    )
    await job_queue.enqueue(DerivativeJob(file_id=created.id, owner_id="u1"))
    job = await job_queue.dequeue(timeout=1)

    assert await worker.handle(job) == "failed"
    assert job_queue.last_error(job.job_id) == "Not an image file"


@pytest.mark.asyncio
async def test_transient_errors_retry_then_fail(
    files_service, job_queue, db_manager, png_payload
):
    flaky_store = AsyncMock()
    flaky_store.read.side_effect = OSError("I/O error")
    worker = DerivativeWorker(
        db_manager, flaky_store, job_queue, max_attempts=2, retry_base_delay=0.0
    )
    await _create_image(files_service, png_payload)

    job = await job_queue.dequeue(timeout=1)
    assert await worker.handle(job) == "retried"
    assert job_queue.status(job.job_id) == "pending"

    job = await job_queue.dequeue(timeout=1)
    assert job.attempts == 2
    assert await worker.handle(job) == "failed"
    assert job_queue.status(job.job_id) == "failed"


@pytest.mark.asyncio
async def test_retry_uses_exponential_backoff(db_manager, blob_store):
    queue = AsyncMock()
    worker = DerivativeWorker(db_manager, blob_store, queue, retry_base_delay=2.0)
    worker.process = AsyncMock(side_effect=OSError("busy"))

    status = await worker.handle(
        DerivativeJob(file_id="file_1", owner_id="u1", attempts=3)
    )

    assert status == "retried"
    job, delay, error = queue.retry.call_args.args
    assert delay == 8.0
    assert error == "busy"


@pytest.mark.asyncio
async def test_worker_pool_drains_queue(
    files_service, job_queue, db_manager, blob_store, png_payload
):
    created = [await _create_image(files_service, png_payload) for _ in range(3)]
    pool = WorkerPool(
        db_manager, blob_store, job_queue, worker_count=2, poll_interval=0.02
    )

    pool.start()
    try:
        for _ in range(200):
            if all(job_queue.status(j.job_id) == "done" for j in job_queue.jobs):
                break
            await asyncio.sleep(0.02)
    finally:
        await pool.stop()

    for record in created:
        content, _ = await files_service.get_content(record.id, "u1", width=500)
        with Image.open(io.BytesIO(content)) as image:
            assert image.width == 500


@pytest.mark.asyncio
async def test_worker_survives_queue_errors(files_service, job_queue, worker, png_payload):
    await _create_image(files_service, png_payload)
    await _create_image(files_service, png_payload)
    real_ack = job_queue.ack
    acks = []

    async def flaky_ack(job):
        acks.append(job.job_id)
        if len(acks) == 1:
            raise OSError("database is locked")
        await real_ack(job)

    job_queue.ack = flaky_ack
    stop_event = asyncio.Event()
    task = asyncio.create_task(worker.run(stop_event))
    try:
        for _ in range(200):
            if len(acks) >= 2:
                break
            await asyncio.sleep(0.02)
        assert not task.done()
    finally:
        stop_event.set()
        await task

    first, second = job_queue.jobs
    assert job_queue.status(first.job_id) == "in_progress"
    assert job_queue.status(second.job_id) == "done"
