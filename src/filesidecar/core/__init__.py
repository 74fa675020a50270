"""
Reconciliation engine: diff, reconciler, work queue and dispatcher.
"""

from filesidecar.core.diff import Diff, compute_diff
from filesidecar.core.dispatcher import Dispatcher
from filesidecar.core.reconciler import ReconcileResult, Reconciler
from filesidecar.core.workqueue import RateLimitingQueue

__all__ = [
    "Diff",
    "compute_diff",
    "Dispatcher",
    "Reconciler",
    "ReconcileResult",
    "RateLimitingQueue",
]
