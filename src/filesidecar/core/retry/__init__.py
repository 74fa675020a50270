"""
Retry scheduling for keys that failed to reconcile.

Exponential per-key backoff with a ceiling, combined with an overall token
bucket. Retries are unbounded; only the delay is capped.
"""

from filesidecar.core.retry.policy import (
    BackoffPolicy,
    DEFAULT_BACKOFF_POLICY,
    FAST_BACKOFF_POLICY,
)
from filesidecar.core.retry.rate_limiter import (
    BucketRateLimiter,
    ItemExponentialFailureRateLimiter,
    MaxOfRateLimiter,
    RateLimiter,
    default_controller_rate_limiter,
)

__all__ = [
    # Policy
    "BackoffPolicy",
    "DEFAULT_BACKOFF_POLICY",
    "FAST_BACKOFF_POLICY",
    # Rate limiters
    "RateLimiter",
    "ItemExponentialFailureRateLimiter",
    "BucketRateLimiter",
    "MaxOfRateLimiter",
    "default_controller_rate_limiter",
]
