"""Observability infrastructure for Files Manager."""

from files_manager.observability.logging import configure_logging, get_logger
from files_manager.observability.metrics import (
    metrics_endpoint,
    metrics_registry,
    start_metrics_server,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_endpoint",
    "metrics_registry",
    "start_metrics_server",
]
