"""
Observability module: Prometheus metrics.
"""

from filesidecar.observability.metrics import SidecarMetrics, get_metrics

__all__ = [
    "SidecarMetrics",
    "get_metrics",
]
