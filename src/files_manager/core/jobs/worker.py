"""Thumbnail workers consuming the derivative job queue."""

import asyncio
import time

from files_manager.core.files.blobs import BlobStore, derivative_key
from files_manager.core.files.schemas import FileKind
from files_manager.core.files.store import FilesStore
from files_manager.core.jobs.queue import JobQueue
from files_manager.core.jobs.schemas import DerivativeJob
from files_manager.core.jobs.thumbnails import render_thumbnail
from files_manager.errors import TerminalJobError
from files_manager.observability.logging import get_logger, worker_context
from files_manager.observability.metrics import metrics_registry
from files_manager.storage.database import DatabaseManager

logger = get_logger(__name__)


class DerivativeWorker:
    """Produces the size variants of image files, one job at a time.

    Every width is written with an overwriting, atomic blob write, so running
    the same job twice leaves identical blobs behind. That makes redelivery
    by the queue safe without any per-file lock.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        blob_store: BlobStore,
        queue: JobQueue,
        *,
        worker_id: str = "worker-0",
        max_attempts: int = 5,
        retry_base_delay: float = 1.0,
        poll_interval: float = 1.0,
    ):
        self._db_manager = db_manager
        self._blobs = blob_store
        self._queue = queue
        self._worker_id = worker_id
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._poll_interval = poll_interval

    @property
    def worker_id(self) -> str:
        return self._worker_id

    async def process(self, job: DerivativeJob) -> list[str]:
        """Generate every size variant for ``job``.

        Returns:
            The blob keys written, in width order

        Raises:
            TerminalJobError: The file is missing, owned by someone else or not an image
            OSError: Reading the original or writing a variant failed
        """
        async with self._db_manager.session() as session:
            file_model = await FilesStore(session).find_one(
                job.file_id, owner_id=job.owner_id
            )
        if file_model is None:
            raise TerminalJobError("File not found")
        if file_model.kind != FileKind.IMAGE.value or not file_model.blob_key:
            raise TerminalJobError("Not an image file")

        original = await self._blobs.read(file_model.blob_key)

        written = []
        for width in job.widths:
            thumbnail = await asyncio.to_thread(render_thumbnail, original, width)
            key = derivative_key(file_model.blob_key, width)
            await self._blobs.write(key, thumbnail)
            written.append(key)
            logger.debug("Thumbnail written", file_id=job.file_id, width=width)

        return written

    async def handle(self, job: DerivativeJob) -> str:
        """Process one delivered job and settle it with the queue.

        Returns:
            The resulting status: "done", "retried" or "failed"
        """
        log = logger.bind(
            job_id=job.job_id,
            file_id=job.file_id,
            attempt=job.attempts,
        )
        start_time = time.monotonic()

        try:
            await self.process(job)
        except TerminalJobError as e:
            await self._queue.fail(job, str(e))
            status = "failed"
        except Exception as e:
            # Anything else (I/O, database) is treated as transient
            log.warning("Job attempt failed", error=str(e))
            if job.attempts >= self._max_attempts:
                await self._queue.fail(job, f"Gave up after {job.attempts} attempts: {e}")
                status = "failed"
            else:
                delay = self._retry_base_delay * (2 ** (job.attempts - 1))
                await self._queue.retry(job, delay, str(e))
                log.info("Job scheduled for retry", delay=delay)
                status = "retried"
        else:
            await self._queue.ack(job)
            log.info("Thumbnails generated")
            status = "done"

        metrics_registry.record_job(status, time.monotonic() - start_time)
        return status

    async def run(self, stop_event: asyncio.Event) -> None:
        """Consume jobs until ``stop_event`` is set."""
        with worker_context(self._worker_id):
            logger.info("Worker started")
            while not stop_event.is_set():
                try:
                    job = await self._queue.dequeue(timeout=self._poll_interval)
                    if job is None:
                        continue
                    await self.handle(job)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # Unsettled claims are redelivered after the visibility timeout
                    logger.exception("Worker loop error")
                    await asyncio.sleep(self._poll_interval)
            logger.info("Worker stopped")


class WorkerPool:
    """Runs a fixed number of DerivativeWorker loops as asyncio tasks."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        blob_store: BlobStore,
        queue: JobQueue,
        *,
        worker_count: int = 1,
        max_attempts: int = 5,
        retry_base_delay: float = 1.0,
        poll_interval: float = 1.0,
    ):
        self._workers = [
            DerivativeWorker(
                db_manager,
                blob_store,
                queue,
                worker_id=f"worker-{i}",
                max_attempts=max_attempts,
                retry_base_delay=retry_base_delay,
                poll_interval=poll_interval,
            )
            for i in range(worker_count)
        ]
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def workers(self) -> list[DerivativeWorker]:
        return list(self._workers)

    def start(self) -> None:
        if self._tasks:
            raise RuntimeError("Worker pool already started")
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(worker.run(self._stop_event), name=worker.worker_id)
            for worker in self._workers
        ]

    async def stop(self) -> None:
        """Signal all workers and wait for their current job to finish."""
        self._stop_event.set()
        await asyncio.gather(*self._tasks)
        self._tasks = []

    async def wait(self) -> None:
        await asyncio.gather(*self._tasks)
