"""
Backoff policy for requeueing keys that failed to reconcile.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a ceiling and no attempt limit.

    A failed key is retried forever; only the delay grows, up to ``max_delay``.

    Examples:
        >>> policy = BackoffPolicy(initial_delay=1.0, max_delay=60.0)
        >>> policy.get_delay(0), policy.get_delay(3)
        (1.0, 8.0)
    """

    # Delay after the first failure (seconds)
    initial_delay: float = 0.005

    # Upper bound on any delay (seconds)
    max_delay: float = 1000.0

    # delay = initial_delay * base^failures
    exponential_base: float = 2.0

    # ±25% random jitter; off by default so per-key delays stay predictable
    jitter: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")

    def get_delay(self, failures: int) -> float:
        """
        Calculate the delay before the next attempt.

        Implements: delay = min(initial_delay * base^failures, max_delay)

        Args:
            failures: Consecutive failures recorded before this one (0-indexed)

        Returns:
            Delay in seconds
        """
        try:
            delay = self.initial_delay * (self.exponential_base**failures)
        except OverflowError:
            return self.max_delay

        if self.jitter:
            delay *= random.uniform(0.75, 1.25)

        # Cap applied after jitter so max_delay is a hard upper bound
        return min(delay, self.max_delay)


# Controller defaults: 5ms doubling up to ~16 minutes
DEFAULT_BACKOFF_POLICY = BackoffPolicy()

FAST_BACKOFF_POLICY = BackoffPolicy(initial_delay=0.001, max_delay=0.05)
