"""Tests for the in-memory and database-backed job queues."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from files_manager.config import DatabaseQueueConfig, MemoryQueueConfig
from files_manager.core.jobs.queue import (
    DatabaseJobQueue,
    InMemoryJobQueue,
    create_job_queue,
)
from files_manager.core.jobs.schemas import DerivativeJob
from files_manager.storage.models import DerivativeJobModel


@pytest.fixture
def database_queue(db_manager) -> DatabaseJobQueue:
    return DatabaseJobQueue(db_manager, visibility_timeout=60, poll_interval=0.01)


# -----------------------------------------------------------------------------
# InMemoryJobQueue
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_memory_queue_delivers_and_acks():
    queue = InMemoryJobQueue()
    job = await queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))

    delivered = await queue.dequeue(timeout=1)

    assert delivered.job_id == job.job_id
    assert delivered.attempts == 1
    assert queue.status(job.job_id) == "in_progress"

    await queue.ack(delivered)
    assert queue.status(job.job_id) == "done"


@pytest.mark.asyncio
async def test_memory_queue_dequeue_times_out():
    queue = InMemoryJobQueue()
    assert await queue.dequeue(timeout=0.01) is None


@pytest.mark.asyncio
async def test_memory_queue_retry_redelivers_after_delay():
    queue = InMemoryJobQueue()
    await queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    first = await queue.dequeue(timeout=1)

    await queue.retry(first, delay=0.05, error="boom")

    assert await queue.dequeue(timeout=0.01) is None
    second = await queue.dequeue(timeout=1)
    assert second.job_id == first.job_id
    assert second.attempts == 2
    assert queue.last_error(first.job_id) == "boom"


@pytest.mark.asyncio
async def test_memory_queue_fail_notifies_listeners():
    queue = InMemoryJobQueue()
    failures = []

    async def listener(job, error):
        failures.append((job.file_id, error))

    queue.on_failure(listener)
    await queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    job = await queue.dequeue(timeout=1)

    await queue.fail(job, "Not an image file")

    assert failures == [("file_1", "Not an image file")]
    assert queue.status(job.job_id) == "failed"
    assert await queue.dequeue(timeout=0.01) is None


# -----------------------------------------------------------------------------
# DatabaseJobQueue
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_database_queue_round_trip(database_queue):
    job = await database_queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    assert await database_queue.get_status(job.job_id) == "pending"

    delivered = await database_queue.dequeue(timeout=1)
    assert delivered.job_id == job.job_id
    assert delivered.file_id == "file_1"
    assert delivered.owner_id == "u1"
    assert delivered.attempts == 1
    assert await database_queue.get_status(job.job_id) == "in_progress"

    await database_queue.ack(delivered)
    assert await database_queue.get_status(job.job_id) == "done"
    assert await database_queue.dequeue(timeout=0.05) is None


@pytest.mark.asyncio
async def test_database_queue_is_durable_across_instances(db_manager):
    producer = DatabaseJobQueue(db_manager, poll_interval=0.01)
    job = await producer.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))

    consumer = DatabaseJobQueue(db_manager, poll_interval=0.01)
    delivered = await consumer.dequeue(timeout=1)

    assert delivered.job_id == job.job_id


@pytest.mark.asyncio
async def test_database_queue_concurrent_consumers_claim_once(database_queue):
    await database_queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))

    results = await asyncio.gather(
        *(database_queue.dequeue(timeout=0.2) for _ in range(4))
    )

    assert len([r for r in results if r is not None]) == 1


@pytest.mark.asyncio
async def test_database_queue_retry_respects_delay(database_queue):
    await database_queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    first = await database_queue.dequeue(timeout=1)

    await database_queue.retry(first, delay=30, error="transient")
    assert await database_queue.dequeue(timeout=0.05) is None

    await database_queue.retry(first, delay=0, error="transient")
    second = await database_queue.dequeue(timeout=1)
    assert second.attempts == 2


@pytest.mark.asyncio
async def test_database_queue_redelivers_stale_claims(db_manager, database_queue):
    job = await database_queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    await database_queue.dequeue(timeout=1)

    # Simulate a worker that crashed long ago without settling the job
    async with db_manager.session() as session:
        await session.execute(
            update(DerivativeJobModel)
            .where(DerivativeJobModel.id == job.job_id)
            .values(claimed_at=datetime.now(timezone.utc) - timedelta(hours=1))
        )

    redelivered = await database_queue.dequeue(timeout=1)
    assert redelivered.job_id == job.job_id
    assert redelivered.attempts == 2


@pytest.mark.asyncio
async def test_database_queue_fail_records_error(db_manager, database_queue):
    failures = []

    async def listener(job, error):
        failures.append(error)

    database_queue.on_failure(listener)
    job = await database_queue.enqueue(DerivativeJob(file_id="file_1", owner_id="u1"))
    delivered = await database_queue.dequeue(timeout=1)

    await database_queue.fail(delivered, "File not found")

    async with db_manager.session() as session:
        row = (
            await session.execute(
                select(DerivativeJobModel).where(DerivativeJobModel.id == job.job_id)
            )
        ).scalar_one()
    assert row.status == "failed"
    assert row.last_error == "File not found"
    assert failures == ["File not found"]
    assert await database_queue.dequeue(timeout=0.05) is None


@pytest.mark.asyncio
async def test_create_job_queue(db_manager):
    assert isinstance(create_job_queue(DatabaseQueueConfig(), db_manager), DatabaseJobQueue)
    assert isinstance(create_job_queue(MemoryQueueConfig(), db_manager), InMemoryJobQueue)
