"""Standalone thumbnail worker process.

Runs ``worker_count`` workers against the durable queue until SIGINT/SIGTERM.
"""

import asyncio
import signal

from files_manager.config import MemoryQueueConfig, settings
from files_manager.core.files.blobs import create_blob_store
from files_manager.core.jobs.queue import create_job_queue
from files_manager.core.jobs.worker import WorkerPool
from files_manager.main import load_config
from files_manager.observability.logging import configure_logging, get_logger
from files_manager.observability.metrics import start_metrics_server
from files_manager.storage.database import init_database

logger = get_logger(__name__)


async def run_workers() -> None:
    config = load_config(settings)
    configure_logging(
        level=config.logging.level, json_logs=config.logging.json_logs, process="worker"
    )

    if isinstance(config.queue, MemoryQueueConfig):
        raise SystemExit(
            "The in-memory queue cannot be shared across processes; "
            "use the database queue or run workers in-process"
        )

    db_manager = await init_database(config.storage)
    blob_store = create_blob_store(config.blobs)
    await blob_store.initialize()
    job_queue = create_job_queue(
        config.queue, db_manager, poll_interval=config.worker.poll_interval
    )

    pool = WorkerPool(
        db_manager,
        blob_store,
        job_queue,
        worker_count=config.worker.worker_count,
        max_attempts=config.worker.max_attempts,
        retry_base_delay=config.worker.retry_base_delay,
        poll_interval=config.worker.poll_interval,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    if config.worker.metrics_port is not None:
        start_metrics_server(config.worker.metrics_port)
        logger.info("Metrics server started", port=config.worker.metrics_port)

    pool.start()
    logger.info("Worker process running", worker_count=config.worker.worker_count)
    try:
        await stop.wait()
    finally:
        await pool.stop()
        await job_queue.close()
        await db_manager.close()
        logger.info("Worker process stopped")


def main():
    """Run the worker process."""
    asyncio.run(run_workers())


if __name__ == "__main__":
    main()
