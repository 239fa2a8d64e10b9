"""FastAPI application entrypoint for Files Manager."""

from contextlib import asynccontextmanager

import yaml
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from files_manager.api import files_router
from files_manager.config import Settings, StackConfig, settings
from files_manager.core.files.blobs import create_blob_store
from files_manager.core.files.service import FilesService
from files_manager.core.jobs.queue import create_job_queue
from files_manager.core.jobs.worker import WorkerPool
from files_manager.core.sessions.store import create_session_store
from files_manager.errors import FilesError, Internal, InvalidArgument
from files_manager.observability import metrics_endpoint
from files_manager.observability.logging import (
    RequestIDMiddleware,
    configure_logging,
    get_logger,
)
from files_manager.storage.database import init_database

logger = get_logger(__name__)


def load_config(settings: Settings) -> StackConfig:
    """Load configuration from file or environment."""
    if settings.config_file and settings.config_file.exists():
        logger.info("Loading config", path=str(settings.config_file))
        with open(settings.config_file) as f:
            config_dict = yaml.safe_load(f)
        return StackConfig.from_dict(config_dict)
    else:
        logger.info("Using environment-based configuration")
        return settings.to_stack_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown of:
    - Database connections
    - Blob storage and session store
    - Job queue and, optionally, in-process workers
    """
    config: StackConfig = app.state.config
    configure_logging(level=config.logging.level, json_logs=config.logging.json_logs)
    logger.info("Starting Files Manager...")

    db_manager = await init_database(config.storage)
    app.state.db_manager = db_manager

    blob_store = create_blob_store(config.blobs)
    await blob_store.initialize()

    session_store = create_session_store(config.sessions)
    await session_store.initialize()
    app.state.session_store = session_store

    job_queue = create_job_queue(
        config.queue, db_manager, poll_interval=config.worker.poll_interval
    )
    app.state.job_queue = job_queue

    app.state.files_service = FilesService(
        db_manager=db_manager,
        blob_store=blob_store,
        job_queue=job_queue,
    )

    worker_pool = None
    if config.worker.run_in_process:
        worker_pool = WorkerPool(
            db_manager,
            blob_store,
            job_queue,
            worker_count=config.worker.worker_count,
            max_attempts=config.worker.max_attempts,
            retry_base_delay=config.worker.retry_base_delay,
            poll_interval=config.worker.poll_interval,
        )
        worker_pool.start()
        logger.info("In-process workers started", count=config.worker.worker_count)

    logger.info("Files Manager started successfully")

    yield

    logger.info("Shutting down Files Manager...")
    if worker_pool is not None:
        await worker_pool.stop()
    await job_queue.close()
    await session_store.close()
    await db_manager.close()
    logger.info("Shutdown complete")


async def files_error_handler(request: Request, exc: FilesError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# HTTP body and query names that differ from the field names the service reports
_REQUEST_FIELDS = {
    "type": "kind",
    "data": "payload",
    "parentId": "parent_id",
    "isPublic": "is_public",
}


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed input as InvalidArgument on its first offending field."""
    errors = exc.errors()
    loc = errors[0]["loc"] if errors else ()
    # Non-JSON bodies locate the error by character offset
    field = loc[-1] if loc and isinstance(loc[-1], str) else "body"
    error = InvalidArgument(_REQUEST_FIELDS.get(field, field))
    logger.info("Rejected malformed request", path=request.url.path, field=error.field)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    error = Internal()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(config: StackConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Files Manager",
        description="Hierarchical file storage with asynchronous thumbnails",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config if config is not None else load_config(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app.state.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(FilesError, files_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(files_router)

    if app.state.config.server.enable_metrics:
        app.get("/metrics", include_in_schema=False)(metrics_endpoint)

    return app


def main():
    """Run the server."""
    import uvicorn

    uvicorn.run(
        "files_manager.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
