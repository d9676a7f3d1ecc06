"""
Retry policy with exponential backoff.

A single ``RetryPolicy`` is applied uniformly to provider API calls and to
network git operations (clone, fetch, push). Only transient kinds are
retried; a provider-supplied retry-after wins over the computed backoff.

Example:
    >>> policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    >>> repos = policy.call(provider.authenticate, description="authenticate gh")
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from forksync.core.errors import ErrorKind, ForkSyncError, RateLimitedError

if TYPE_CHECKING:
    from forksync.core.config.models import RetrySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.NETWORK_TRANSIENT})


def is_retryable(exc: BaseException) -> bool:
    """Transient network failures and rate limiting are retryable."""
    return isinstance(exc, ForkSyncError) and exc.kind in RETRYABLE_KINDS


class RetryPolicy:
    """
    Bounded retry with exponential backoff and jitter.

    Attributes:
        max_attempts: Total attempts, including the first (>= 1)
        base_delay: Delay before the first retry, in seconds
        multiplier: Backoff growth per attempt (>= 1.0)
        max_delay: Cap on any single backoff wait
        max_retry_after: Longest provider retry-after to wait for; a longer one
            re-raises the RateLimitedError without sleeping
        jitter_ratio: Random variance ratio (0.2 means +/-20%)
        retryable: Predicate deciding which exceptions are retried
        sleep: Sleep function, injectable for tests
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 60.0,
        max_retry_after: float = 3600.0,
        jitter_ratio: float = 0.2,
        retryable: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.max_retry_after = max_retry_after
        self.jitter_ratio = jitter_ratio
        self.retryable = retryable
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: RetrySettings, **overrides: Any) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay,
            multiplier=settings.multiplier,
            max_delay=settings.max_delay,
            max_retry_after=settings.max_retry_after,
            **overrides,
        )

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=1)

    def calculate_delay(self, attempt: int, exc: BaseException | None = None) -> float:
        """
        Delay before retry number ``attempt`` (0-indexed).

        A RateLimitedError carrying retry_after waits exactly that long
        instead of the exponential backoff.
        """
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            return max(0.0, exc.retry_after)

        delay = self.base_delay * (self.multiplier**attempt)
        if self.jitter_ratio:
            variance = delay * self.jitter_ratio
            delay += random.uniform(-variance, variance)
        return min(max(0.0, delay), self.max_delay)

    def call(self, func: Callable[..., T], *args: Any, description: str = "", **kwargs: Any) -> T:
        """
        Call ``func`` and retry it on retryable failures.

        After the final attempt the last exception is re-raised unchanged.
        """
        name = description or getattr(func, "__name__", repr(func))

        for attempt in range(self.max_attempts):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                if attempt + 1 >= self.max_attempts:
                    logger.warning(
                        "%s: giving up after %d attempts: %s", name, self.max_attempts, e
                    )
                    raise

                delay = self.calculate_delay(attempt, e)
                if isinstance(e, RateLimitedError) and delay > self.max_retry_after:
                    logger.warning(
                        "%s: rate limit resets in %.0fs, longer than %.0fs; not waiting",
                        name,
                        delay,
                        self.max_retry_after,
                    )
                    raise
                logger.info(
                    "%s: retry %d/%d after %.2fs due to: %s",
                    name,
                    attempt + 1,
                    self.max_attempts - 1,
                    delay,
                    e,
                )
                self.sleep(delay)

        raise RuntimeError("Retry loop completed without success or exception")

    def wrap(self, func: Callable[..., T], description: str = "") -> Callable[..., T]:
        """Return ``func`` bound to this policy."""

        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.call(func, *args, description=description, **kwargs)

        return wrapper
