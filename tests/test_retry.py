"""
Tests for the retry policy.
"""

import pytest

from forksync.core.config import RetrySettings
from forksync.core.errors import (
    AuthError,
    NetworkTransientError,
    NotFoundError,
    RateLimitedError,
)
from forksync.core.retry import RetryPolicy, is_retryable


class Flaky:
    """Raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def policy(sleeps) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=3, base_delay=1.0, multiplier=2.0, jitter_ratio=0.0, sleep=sleeps.append
    )


class TestRetryPolicy:
    def test_success_needs_no_retry(self, policy, sleeps):
        func = Flaky()
        assert policy.call(func) == "ok"
        assert func.calls == 1
        assert sleeps == []

    def test_transient_errors_are_retried_with_backoff(self, policy, sleeps):
        func = Flaky(NetworkTransientError("reset"), NetworkTransientError("reset"))

        assert policy.call(func) == "ok"
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_retry_after_overrides_backoff(self, policy, sleeps):
        func = Flaky(RateLimitedError("slow down", retry_after=7.5))

        assert policy.call(func) == "ok"
        assert sleeps == [7.5]

    def test_retry_after_waits_the_full_time(self, policy, sleeps):
        """max_delay bounds backoff only, never a provider's retry-after."""
        func = Flaky(RateLimitedError("quota exhausted", retry_after=600))

        assert policy.call(func) == "ok"
        assert sleeps == [600.0]
        assert func.calls == 2

    def test_retry_after_beyond_ceiling_fails_without_waiting(self, sleeps):
        policy = RetryPolicy(max_attempts=3, max_retry_after=300.0, sleep=sleeps.append)
        func = Flaky(RateLimitedError("quota exhausted", retry_after=900))

        with pytest.raises(RateLimitedError) as exc_info:
            policy.call(func)

        assert exc_info.value.retry_after == 900
        assert func.calls == 1
        assert sleeps == []

    def test_backoff_is_capped(self, sleeps):
        policy = RetryPolicy(
            max_attempts=2, base_delay=30.0, max_delay=10.0, jitter_ratio=0.0, sleep=sleeps.append
        )

        policy.call(Flaky(NetworkTransientError("reset")))

        assert sleeps == [10.0]

    def test_last_error_is_reraised_unchanged(self, policy):
        final = NetworkTransientError("third")
        func = Flaky(NetworkTransientError("first"), NetworkTransientError("second"), final)

        with pytest.raises(NetworkTransientError) as exc_info:
            policy.call(func)

        assert exc_info.value is final
        assert func.calls == 3

    @pytest.mark.parametrize("error", [AuthError("no"), NotFoundError("gone"), ValueError("bug")])
    def test_non_retryable_errors_surface_immediately(self, policy, sleeps, error):
        func = Flaky(error)

        with pytest.raises(type(error)):
            policy.call(func)

        assert func.calls == 1
        assert sleeps == []

    def test_no_retry_policy(self):
        func = Flaky(NetworkTransientError("down"))
        with pytest.raises(NetworkTransientError):
            RetryPolicy.no_retry().call(func)
        assert func.calls == 1

    def test_jitter_stays_within_ratio(self):
        policy = RetryPolicy(base_delay=10.0, jitter_ratio=0.2)
        for _ in range(50):
            assert 8.0 <= policy.calculate_delay(0) <= 12.0

    def test_from_settings(self):
        settings = RetrySettings(max_attempts=5, base_delay=0.5, max_retry_after=120.0)
        policy = RetryPolicy.from_settings(settings)
        assert policy.max_attempts == 5
        assert policy.base_delay == 0.5
        assert policy.max_retry_after == 120.0

    def test_wrap_binds_policy(self, policy, sleeps):
        wrapped = policy.wrap(Flaky(NetworkTransientError("x")), description="thing")
        assert wrapped() == "ok"
        assert sleeps == [1.0]

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"multiplier": 0.5}, {"jitter_ratio": 1.5}, {"base_delay": -1}],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


def test_is_retryable():
    assert is_retryable(RateLimitedError("x"))
    assert is_retryable(NetworkTransientError("x"))
    assert not is_retryable(AuthError("x"))
    assert not is_retryable(RuntimeError("x"))
