"""Prometheus metrics for uploads, reads and thumbnail jobs."""

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)


class MetricsRegistry:
    """Central registry for application metrics."""

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Initialize Prometheus metrics."""

        self.uploads_total = Counter(
            "files_manager_uploads_total",
            "Total files and folders created",
            ["kind", "status"],
        )

        self.content_reads_total = Counter(
            "files_manager_content_reads_total",
            "Total content retrievals",
            ["variant", "outcome"],  # variant: original, 100, 250, 500
        )

        self.jobs_total = Counter(
            "files_manager_jobs_total",
            "Thumbnail jobs handled by workers",
            ["status"],  # status: done, retried, failed
        )

        self.job_duration_seconds = Histogram(
            "files_manager_job_duration_seconds",
            "Thumbnail job processing duration in seconds",
            ["status"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
        )

    def record_upload(self, kind: str, status: str) -> None:
        self.uploads_total.labels(kind=kind, status=status).inc()

    def record_content_read(self, variant: str, outcome: str) -> None:
        self.content_reads_total.labels(variant=variant, outcome=outcome).inc()

    def record_job(self, status: str, duration: float) -> None:
        """Record a processed thumbnail job."""
        self.jobs_total.labels(status=status).inc()
        self.job_duration_seconds.labels(status=status).observe(duration)


# Global metrics registry
metrics_registry = MetricsRegistry()


def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


def start_metrics_server(port: int) -> None:
    """Serve metrics from a background thread, for processes without an HTTP app."""
    start_http_server(port)
