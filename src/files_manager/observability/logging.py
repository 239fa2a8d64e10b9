"""Structured logging for the API and worker processes.

Every event carries the process role (``api`` or ``worker``). HTTP requests
add ``request_id``, ``method`` and ``path``, and worker loops add
``worker_id``, through structlog context variables.
"""

import logging
import logging.config
import sys
import uuid
from contextlib import AbstractContextManager

import structlog

REQUEST_ID_HEADER = "x-request-id"

# Third-party loggers that are noisy at INFO
_LIBRARY_LEVELS = {
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
    "asyncpg": "WARNING",
    "PIL": "WARNING",
}


def _add_process(process: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("process", process)
        return event_dict

    return processor


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    process: str = "api",
) -> None:
    """Configure structlog and route stdlib loggers through the same renderer.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render JSON lines instead of the console format
        process: Role stamped on every event, "api" or "worker"
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        _add_process(process),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]
    if json_logs:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    renderer = renderers[-1]

    structlog.configure(
        processors=[*shared_processors, *renderers],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    loggers = {
        "": {"handlers": ["default"], "level": level.upper(), "propagate": False},
    }
    for name, library_level in _LIBRARY_LEVELS.items():
        loggers[name] = {"handlers": ["default"], "level": library_level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processor": renderer,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "stream": sys.stdout,
                },
            },
            "loggers": loggers,
        }
    )

    structlog.get_logger(__name__).info(
        "Logging configured", level=level, json_logs=json_logs
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def worker_context(worker_id: str) -> AbstractContextManager:
    """Bind ``worker_id`` to every event logged inside the block."""
    return structlog.contextvars.bound_contextvars(worker_id=worker_id)


class RequestIDMiddleware:
    """Tags each HTTP request with an id, in its log events and its response.

    An incoming ``x-request-id`` header is reused so ids can be followed
    across services; otherwise a new one is generated.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        incoming = headers.get(REQUEST_ID_HEADER.encode(), b"").decode("latin-1")
        request_id = incoming or uuid.uuid4().hex

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (REQUEST_ID_HEADER.encode(), request_id.encode("latin-1")),
                ]
            await send(message)

        with structlog.contextvars.bound_contextvars(
            request_id=request_id, method=scope["method"], path=scope["path"]
        ):
            await self.app(scope, receive, send_wrapper)
