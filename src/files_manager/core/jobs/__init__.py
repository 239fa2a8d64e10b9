"""Thumbnail job queue and workers."""

from files_manager.core.jobs.queue import (
    DatabaseJobQueue,
    InMemoryJobQueue,
    JobQueue,
    create_job_queue,
)
from files_manager.core.jobs.schemas import THUMBNAIL_WIDTHS, DerivativeJob
from files_manager.core.jobs.worker import DerivativeWorker, WorkerPool

__all__ = [
    "DatabaseJobQueue",
    "DerivativeJob",
    "DerivativeWorker",
    "InMemoryJobQueue",
    "JobQueue",
    "THUMBNAIL_WIDTHS",
    "WorkerPool",
    "create_job_queue",
]
