"""Durable, at-least-once job queue for thumbnail generation.

Workers block on ``dequeue`` and settle every delivered job with exactly one
of ``ack``, ``retry`` or ``fail``. A job that is delivered but never settled
(crashed worker) becomes deliverable again after the visibility timeout.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select, update

from files_manager.config import (
    DatabaseQueueConfig,
    MemoryQueueConfig,
    QueueBackendConfig,
)
from files_manager.core.jobs.schemas import DerivativeJob
from files_manager.observability.logging import get_logger
from files_manager.storage.database import DatabaseManager
from files_manager.storage.models import DerivativeJobModel

logger = get_logger(__name__)

FailureListener = Callable[[DerivativeJob, str], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueue(ABC):
    """Abstract base class for job queue backends."""

    def __init__(self) -> None:
        self._failure_listeners: list[FailureListener] = []

    def on_failure(self, listener: FailureListener) -> None:
        """Register a coroutine called with (job, error) when a job fails terminally."""
        self._failure_listeners.append(listener)

    async def _notify_failure(self, job: DerivativeJob, error: str) -> None:
        logger.error(
            "Job failed",
            job_id=job.job_id,
            file_id=job.file_id,
            attempts=job.attempts,
            error=error,
        )
        for listener in self._failure_listeners:
            await listener(job, error)

    @abstractmethod
    async def enqueue(self, job: DerivativeJob) -> DerivativeJob:
        ...

    @abstractmethod
    async def dequeue(self, timeout: float) -> DerivativeJob | None:
        """Wait up to ``timeout`` seconds for the next deliverable job.

        The returned job has ``attempts`` already incremented for this delivery.
        """
        ...

    @abstractmethod
    async def ack(self, job: DerivativeJob) -> None:
        """Mark a delivered job as done."""
        ...

    @abstractmethod
    async def retry(self, job: DerivativeJob, delay: float, error: str) -> None:
        """Make a delivered job deliverable again after ``delay`` seconds."""
        ...

    @abstractmethod
    async def fail(self, job: DerivativeJob, error: str) -> None:
        """Mark a delivered job as permanently failed."""
        ...

    async def close(self) -> None:
        """Release any resources held by the queue."""
        pass


class InMemoryJobQueue(JobQueue):
    """Process-local queue backed by asyncio primitives.

    Not durable; intended for tests and single-process development.
    """

    def __init__(self) -> None:
        super().__init__()
        self._ready: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: dict[str, DerivativeJob] = {}
        self._status: dict[str, str] = {}
        self._errors: dict[str, str] = {}
        self._timers: set[asyncio.TimerHandle] = set()

    def status(self, job_id: str) -> str | None:
        return self._status.get(job_id)

    def last_error(self, job_id: str) -> str | None:
        return self._errors.get(job_id)

    @property
    def jobs(self) -> list[DerivativeJob]:
        return list(self._jobs.values())

    async def enqueue(self, job: DerivativeJob) -> DerivativeJob:
        self._jobs[job.job_id] = job
        self._status[job.job_id] = "pending"
        self._ready.put_nowait(job.job_id)
        logger.info("Job enqueued", job_id=job.job_id, file_id=job.file_id)
        return job

    async def dequeue(self, timeout: float) -> DerivativeJob | None:
        try:
            job_id = await asyncio.wait_for(self._ready.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

        job = self._jobs[job_id].model_copy(
            update={"attempts": self._jobs[job_id].attempts + 1}
        )
        self._jobs[job_id] = job
        self._status[job_id] = "in_progress"
        return job

    async def ack(self, job: DerivativeJob) -> None:
        self._status[job.job_id] = "done"

    async def retry(self, job: DerivativeJob, delay: float, error: str) -> None:
        self._status[job.job_id] = "pending"
        self._errors[job.job_id] = error
        if delay <= 0:
            self._ready.put_nowait(job.job_id)
            return

        loop = asyncio.get_running_loop()

        def _release() -> None:
            self._timers.discard(handle)
            self._ready.put_nowait(job.job_id)

        handle = loop.call_later(delay, _release)
        self._timers.add(handle)

    async def fail(self, job: DerivativeJob, error: str) -> None:
        self._status[job.job_id] = "failed"
        self._errors[job.job_id] = error
        await self._notify_failure(job, error)

    async def close(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()


class DatabaseJobQueue(JobQueue):
    """Durable queue stored in the ``derivative_jobs`` table.

    A claim is a conditional UPDATE guarded by the row's previous status and
    attempt count, so concurrent workers never both win the same delivery.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        *,
        visibility_timeout: float = 300.0,
        poll_interval: float = 0.5,
        claim_batch_size: int = 5,
    ):
        super().__init__()
        self._db_manager = db_manager
        self._visibility_timeout = visibility_timeout
        self._poll_interval = poll_interval
        self._claim_batch_size = claim_batch_size

    async def enqueue(self, job: DerivativeJob) -> DerivativeJob:
        now = _utcnow()
        async with self._db_manager.session() as session:
            session.add(
                DerivativeJobModel(
                    id=job.job_id,
                    file_id=job.file_id,
                    owner_id=job.owner_id,
                    status="pending",
                    attempts=job.attempts,
                    available_at=now,
                    created_at=now,
                )
            )
            await session.flush()
        logger.info("Job enqueued", job_id=job.job_id, file_id=job.file_id)
        return job

    async def dequeue(self, timeout: float) -> DerivativeJob | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await self._claim()
            if job is not None:
                return job
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def _claim(self) -> DerivativeJob | None:
        now = _utcnow()
        stale_before = now - timedelta(seconds=self._visibility_timeout)
        async with self._db_manager.session() as session:
            result = await session.execute(
                select(
                    DerivativeJobModel.id,
                    DerivativeJobModel.file_id,
                    DerivativeJobModel.owner_id,
                    DerivativeJobModel.status,
                    DerivativeJobModel.attempts,
                )
                .where(
                    or_(
                        and_(
                            DerivativeJobModel.status == "pending",
                            DerivativeJobModel.available_at <= now,
                        ),
                        and_(
                            DerivativeJobModel.status == "in_progress",
                            DerivativeJobModel.claimed_at <= stale_before,
                        ),
                    )
                )
                .order_by(DerivativeJobModel.available_at.asc())
                .limit(self._claim_batch_size)
            )
            for row in result.all():
                claimed = await session.execute(
                    update(DerivativeJobModel)
                    .where(
                        DerivativeJobModel.id == row.id,
                        DerivativeJobModel.status == row.status,
                        DerivativeJobModel.attempts == row.attempts,
                    )
                    .values(
                        status="in_progress",
                        attempts=row.attempts + 1,
                        claimed_at=now,
                    )
                )
                if claimed.rowcount == 1:
                    if row.status == "in_progress":
                        logger.warning("Redelivering stale job", job_id=row.id)
                    return DerivativeJob(
                        job_id=row.id,
                        file_id=row.file_id,
                        owner_id=row.owner_id,
                        attempts=row.attempts + 1,
                    )
        return None

    async def _settle(self, job: DerivativeJob, **values) -> None:
        async with self._db_manager.session() as session:
            await session.execute(
                update(DerivativeJobModel)
                .where(
                    DerivativeJobModel.id == job.job_id,
                    DerivativeJobModel.attempts == job.attempts,
                )
                .values(**values)
            )

    async def ack(self, job: DerivativeJob) -> None:
        await self._settle(job, status="done", claimed_at=None, last_error=None)

    async def retry(self, job: DerivativeJob, delay: float, error: str) -> None:
        await self._settle(
            job,
            status="pending",
            claimed_at=None,
            available_at=_utcnow() + timedelta(seconds=delay),
            last_error=error,
        )

    async def fail(self, job: DerivativeJob, error: str) -> None:
        await self._settle(job, status="failed", claimed_at=None, last_error=error)
        await self._notify_failure(job, error)

    async def get_status(self, job_id: str) -> str | None:
        async with self._db_manager.session() as session:
            result = await session.execute(
                select(DerivativeJobModel.status).where(DerivativeJobModel.id == job_id)
            )
            return result.scalar_one_or_none()


def create_job_queue(
    config: QueueBackendConfig,
    db_manager: DatabaseManager,
    *,
    poll_interval: float = 0.5,
) -> JobQueue:
    """Factory function to create a job queue from config."""
    match config:
        case DatabaseQueueConfig():
            return DatabaseJobQueue(
                db_manager,
                visibility_timeout=config.visibility_timeout,
                poll_interval=poll_interval,
            )
        case MemoryQueueConfig():
            return InMemoryJobQueue()
        case _:
            raise ValueError(f"Unknown queue backend type: {type(config)}")
