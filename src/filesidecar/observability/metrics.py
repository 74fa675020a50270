"""
Prometheus metrics for the sidecar.

Usage:
    from filesidecar.observability import get_metrics

    metrics = get_metrics()
    metrics.start_http_server(port=9090)  # expose /metrics for scraping

Every collector lives on the instance's own CollectorRegistry, so tests can
build a fresh SidecarMetrics without clashing with the process-wide one.
"""

import threading
import time
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from prometheus_client import start_http_server as _start_http_server

from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.observability.metrics")


class SidecarMetrics:
    """Collectors for reconcile passes, per-file operations and the work queue."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.reconcile_total = Counter(
            "filesidecar_reconcile_total",
            "Reconciliation passes by outcome",
            ["outcome"],  # success, list_error, source_error, delete_error, download_error, crash
            registry=self.registry,
        )
        self.reconcile_duration = Histogram(
            "filesidecar_reconcile_duration_seconds",
            "Duration of a reconciliation pass",
            registry=self.registry,
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
        )
        self.files_total = Counter(
            "filesidecar_files_total",
            "Per-file operations by outcome",
            ["operation", "outcome"],  # operation: download, delete; outcome: success, failure
            registry=self.registry,
        )
        self.bytes_downloaded = Counter(
            "filesidecar_downloaded_bytes_total",
            "Bytes written to committed files",
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "filesidecar_workqueue_depth",
            "Keys ready to be processed",
            ["queue"],
            registry=self.registry,
        )
        self.queue_adds = Counter(
            "filesidecar_workqueue_adds_total",
            "Keys added to the queue",
            ["queue"],
            registry=self.registry,
        )
        self.queue_retries = Counter(
            "filesidecar_workqueue_retries_total",
            "Keys requeued with backoff",
            ["queue"],
            registry=self.registry,
        )

    def record_file(self, operation: str, success: bool) -> None:
        self.files_total.labels(operation=operation, outcome="success" if success else "failure").inc()

    @contextmanager
    def time_reconcile(self):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.reconcile_duration.observe(time.perf_counter() - start)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current value of one sample, 0.0 if it was never recorded."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def export(self) -> bytes:
        """Prometheus text exposition of every collector."""
        return generate_latest(self.registry)

    def start_http_server(self, port: int, addr: str = "0.0.0.0") -> None:
        """Serve /metrics on a background thread."""
        _start_http_server(port, addr=addr, registry=self.registry)
        logger.info(f"Metrics server listening on {addr}:{port}")


_metrics: SidecarMetrics | None = None
_metrics_lock = threading.Lock()


def get_metrics() -> SidecarMetrics:
    """Process-wide metrics instance."""
    global _metrics
    if _metrics is None:
        with _metrics_lock:
            if _metrics is None:
                _metrics = SidecarMetrics()
    return _metrics
