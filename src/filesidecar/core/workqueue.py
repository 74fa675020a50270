"""
Deduplicating, rate-limited work queue of reconciliation keys.

Per-key lifecycle::

    Idle -> Queued -> Processing -> Idle                (done after forget)
                                 -> Queued-with-backoff (add_rate_limited)

Guarantees:

- A key is queued at most once at a time.
- A key is handed to at most one worker at a time. Adding a key while it is
  being processed marks it dirty; ``done`` puts it back in the queue, so a
  notification that arrives mid-processing is never lost.
- Delayed adds for the same key collapse onto the earliest ready time.

The queue lives on one asyncio event loop. Any number of coroutines may call
``add``/``get``/``done`` concurrently without further locking.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Hashable

from filesidecar.core.retry.rate_limiter import RateLimiter, default_controller_rate_limiter
from filesidecar.observability.metrics import SidecarMetrics
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.workqueue")


class RateLimitingQueue:
    """
    Work queue with deduplication, in-flight tracking and backoff requeues.

    Args:
        rate_limiter: Decides requeue delays (default: controller rate limiter)
        name: Name used in logs and metric labels
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        *,
        name: str = "filesidecar",
        metrics: SidecarMetrics | None = None,
    ):
        self.rate_limiter = rate_limiter or default_controller_rate_limiter()
        self.name = name
        self.metrics = metrics

        self._queue: deque[Hashable] = deque()
        # Keys that need processing: queued, or re-added while processing
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        # Delayed adds: key -> (ready_at, timer handle)
        self._waiting: dict[Hashable, tuple[float, asyncio.TimerHandle]] = {}

        self._shutting_down = False
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    # --- adding ---------------------------------------------------------------

    def add(self, key: Hashable) -> None:
        """Mark ``key`` as needing processing. Duplicate adds collapse."""
        if self._shutting_down:
            return
        if key in self._dirty:
            return

        self._dirty.add(key)
        if key in self._processing:
            # Requeued by done()
            return

        self._queue.append(key)
        self._record_depth()
        if self.metrics:
            self.metrics.queue_adds.labels(queue=self.name).inc()
        self._wakeup.set()

    def add_after(self, key: Hashable, delay: float) -> None:
        """Add ``key`` once ``delay`` seconds have passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        ready_at = loop.time() + delay
        existing = self._waiting.get(key)
        if existing is not None:
            if existing[0] <= ready_at:
                return
            existing[1].cancel()

        handle = loop.call_later(delay, self._fire_delayed, key)
        self._waiting[key] = (ready_at, handle)

    def add_rate_limited(self, key: Hashable) -> None:
        """Requeue ``key`` after the delay its rate limiter assigns."""
        delay = self.rate_limiter.when(key)
        if self.metrics:
            self.metrics.queue_retries.labels(queue=self.name).inc()
        logger.debug(f"Requeueing {key} in {delay:.3f}s")
        self.add_after(key, delay)

    def _fire_delayed(self, key: Hashable) -> None:
        self._waiting.pop(key, None)
        self.add(key)

    # --- rate limiter passthrough -------------------------------------------

    def forget(self, key: Hashable) -> None:
        """Clear backoff history for ``key``."""
        self.rate_limiter.forget(key)

    def num_requeues(self, key: Hashable) -> int:
        """Consecutive failures recorded for ``key``."""
        return self.rate_limiter.num_requeues(key)

    # --- consuming ------------------------------------------------------------

    async def get(self) -> Hashable | None:
        """
        Wait for the next ready key and mark it as processing.

        Returns:
            The key, or None once the queue is shutting down
        """
        while not self._queue and not self._shutting_down:
            self._wakeup.clear()
            await self._wakeup.wait()

        if self._shutting_down:
            return None

        key = self._queue.popleft()
        self._dirty.discard(key)
        self._processing.add(key)
        self._idle.clear()
        self._record_depth()
        return key

    def done(self, key: Hashable) -> None:
        """
        Mark ``key`` as no longer processing.

        If the key was added again while it was processing it goes back in
        the queue now.
        """
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._record_depth()
            self._wakeup.set()
        if not self._processing:
            self._idle.set()

    # --- lifecycle ------------------------------------------------------------

    def shut_down(self) -> None:
        """Stop handing out keys. Pending and delayed keys are dropped."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for _, handle in self._waiting.values():
            handle.cancel()
        self._waiting.clear()
        self._wakeup.set()
        logger.debug(f"Queue {self.name} shutting down ({len(self._processing)} key(s) in flight)")

    async def shut_down_with_drain(self) -> None:
        """Shut down and wait until every in-flight key has been marked done."""
        self.shut_down()
        await self._idle.wait()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def processing(self) -> frozenset:
        """Keys currently handed out to workers."""
        return frozenset(self._processing)

    def is_waiting(self, key: Hashable) -> bool:
        """True if ``key`` has a delayed add pending."""
        return key in self._waiting

    def __len__(self) -> int:
        return len(self._queue)

    def _record_depth(self) -> None:
        if self.metrics:
            self.metrics.queue_depth.labels(queue=self.name).set(len(self._queue))
