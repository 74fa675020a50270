"""
Rate limiters deciding how long a failed key waits before it is requeued.

A rate limiter answers ``when(key)`` with a delay in seconds and records the
failure; ``forget(key)`` clears the key's history after a success.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable

from filesidecar.core.retry.policy import DEFAULT_BACKOFF_POLICY, BackoffPolicy


class RateLimiter(ABC):
    """Interface shared by all rate limiters."""

    @abstractmethod
    def when(self, key: Hashable) -> float:
        """Record a failure for ``key`` and return how long to wait before retrying it."""

    @abstractmethod
    def forget(self, key: Hashable) -> None:
        """Stop tracking ``key``; its next failure starts from the baseline delay."""

    @abstractmethod
    def num_requeues(self, key: Hashable) -> int:
        """Number of failures recorded for ``key`` since it was last forgotten."""


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Per-key exponential backoff driven by a BackoffPolicy."""

    def __init__(self, policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY):
        self.policy = policy
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, key: Hashable) -> float:
        with self._lock:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return self.policy.get_delay(failures)

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._lock:
            return self._failures.get(key, 0)


class BucketRateLimiter(RateLimiter):
    """
    Overall token bucket shared by every key.

    Tokens refill at ``qps`` per second up to ``burst``. Each ``when`` call
    takes one token; once the bucket is empty the returned delay is the time
    until that token would have been refilled. Keys are not tracked.
    """

    def __init__(self, qps: float = 10.0, burst: int = 100, clock: Callable[[], float] = time.monotonic):
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, key: Hashable) -> float:
        if self.qps <= 0:
            return 0.0
        with self._lock:
            now = self._clock()
            self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.qps)
            self._last = now
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def forget(self, key: Hashable) -> None:
        pass

    def num_requeues(self, key: Hashable) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Combines limiters by taking the longest delay any of them asks for."""

    def __init__(self, *limiters: RateLimiter):
        if not limiters:
            raise ValueError("MaxOfRateLimiter needs at least one limiter")
        self.limiters = limiters

    def when(self, key: Hashable) -> float:
        # Every limiter must record the failure, so no short-circuit
        return max([limiter.when(key) for limiter in self.limiters])

    def forget(self, key: Hashable) -> None:
        for limiter in self.limiters:
            limiter.forget(key)

    def num_requeues(self, key: Hashable) -> int:
        return max(limiter.num_requeues(key) for limiter in self.limiters)


def default_controller_rate_limiter(
    policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
    qps: float = 10.0,
    burst: int = 100,
) -> RateLimiter:
    """
    Per-key exponential backoff combined with an overall 10 qps / 100 burst bucket.
    """
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(policy),
        BucketRateLimiter(qps=qps, burst=burst),
    )
