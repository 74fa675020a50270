"""
Dispatcher: a fixed pool of workers pulling keys from the work queue.

Each worker loops: wait for a key, reconcile it, then either forget its
backoff history (success) or requeue it with backoff (failure), and mark it
done. The queue guarantees no two workers hold the same key.

Shutdown policy: stop handing out keys, let in-flight passes finish, and
cancel whatever is still running after ``shutdown_timeout`` seconds.
Cancellation reaches the in-flight transfer, whose temporary file is removed.
"""

from __future__ import annotations

import asyncio
from typing import Hashable, Protocol

from filesidecar.core.workqueue import RateLimitingQueue
from filesidecar.exceptions import ReconcileError
from filesidecar.observability.metrics import SidecarMetrics
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.dispatcher")


class KeyReconciler(Protocol):
    async def reconcile(self, key: str) -> object: ...


class Dispatcher:
    """
    Runs ``workers`` concurrent reconcile loops over one queue.

    Args:
        queue: Shared work queue
        reconciler: Object whose ``reconcile(key)`` raises on failure
        workers: Pool size
        shutdown_timeout: Grace period for in-flight passes on shutdown (seconds)
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        queue: RateLimitingQueue,
        reconciler: KeyReconciler,
        *,
        workers: int = 1,
        shutdown_timeout: float = 30.0,
        metrics: SidecarMetrics | None = None,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.queue = queue
        self.reconciler = reconciler
        self.workers = workers
        self.shutdown_timeout = shutdown_timeout
        self.metrics = metrics
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        """Start the worker tasks."""
        if self._tasks:
            raise RuntimeError("Dispatcher already started")
        self._tasks = [asyncio.create_task(self._run_worker(i), name=f"worker-{i}") for i in range(self.workers)]
        logger.info(f"Started {self.workers} worker(s)")

    async def run(self, stop: asyncio.Event) -> None:
        """Start workers, wait for ``stop``, then shut down."""
        self.start()
        try:
            await stop.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop dequeuing and wait for workers, cancelling them after the grace period."""
        self.queue.shut_down()
        if not self._tasks:
            return

        done, pending = await asyncio.wait(self._tasks, timeout=self.shutdown_timeout)
        if pending:
            logger.warning(f"Cancelling {len(pending)} worker(s) still busy after {self.shutdown_timeout}s")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Worker {task.get_name()} exited with error: {task.exception()}")
        self._tasks = []
        logger.info("Workers stopped")

    async def _run_worker(self, index: int) -> None:
        logger.debug(f"Worker {index} started")
        while await self.process_next_item():
            pass
        logger.debug(f"Worker {index} stopped")

    async def process_next_item(self) -> bool:
        """
        Process one key.

        Returns:
            False once the queue is shutting down, True otherwise
        """
        key = await self.queue.get()
        if key is None:
            return False

        try:
            await self.reconciler.reconcile(key)
        except ReconcileError as e:
            self.handle_err(key, e)
        except Exception as e:
            # Unexpected failures are retried like any other, the worker keeps running
            logger.exception(f"Unhandled error while reconciling {key}")
            if self.metrics:
                self.metrics.reconcile_total.labels(outcome="crash").inc()
            self.handle_err(key, e)
        else:
            self.handle_err(key, None)
        finally:
            self.queue.done(key)
        return True

    def handle_err(self, key: Hashable, err: Exception | None) -> None:
        """Forget the key on success, requeue it with backoff on failure."""
        if err is None:
            self.queue.forget(key)
            return

        failures = self.queue.num_requeues(key) + 1
        logger.warning(f"Error syncing {key} (failure #{failures}): {err}; retrying with backoff")
        self.queue.add_rate_limited(key)
