"""Tests for integration base classes (charityflow/integrations/base.py).

Covers:
    - RetryPolicy: success, retry then success, exhaustion, backoff cap
    - RateLimiter: no wait below the limit
    - IntegrationBase: per-instance retry policy
"""

import pytest

from charityflow.core.exceptions import DeliveryError, IntegrationError, StoreError
from charityflow.integrations.base import IntegrationBase, RateLimiter, RetryPolicy


class Flaky:
    """Callable that fails a set number of times before returning."""

    def __init__(self, failures: int, exc: Exception):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


class TestRetryPolicy:
    """Bounded exponential backoff."""

    def test_first_attempt_succeeds(self):
        sleeps = []
        policy = RetryPolicy(sleep=sleeps.append)
        assert policy.call(lambda: 5) == 5
        assert sleeps == []

    def test_retries_then_succeeds(self):
        """Delays double between attempts."""
        sleeps = []
        func = Flaky(2, StoreError("locked"))
        policy = RetryPolicy(max_retries=2, base_delay=1.0, sleep=sleeps.append)

        assert policy.call(func, exceptions=(StoreError,)) == "ok"
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_raises_integration_error(self):
        func = Flaky(10, StoreError("locked"))
        policy = RetryPolicy(max_retries=2, base_delay=0, sleep=lambda s: None)

        with pytest.raises(IntegrationError, match="member update failed after 3 attempts") as info:
            policy.call(func, exceptions=(StoreError,), description="member update")
        assert isinstance(info.value.__cause__, StoreError)
        assert func.calls == 3

    def test_other_exceptions_not_retried(self):
        func = Flaky(1, DeliveryError("rejected"))
        policy = RetryPolicy(sleep=lambda s: None)

        with pytest.raises(DeliveryError):
            policy.call(func, exceptions=(StoreError,))
        assert func.calls == 1

    def test_delay_capped(self):
        sleeps = []
        func = Flaky(4, StoreError("locked"))
        policy = RetryPolicy(max_retries=4, base_delay=10, max_delay=15, sleep=sleeps.append)
        policy.call(func, exceptions=(StoreError,))
        assert sleeps == [10, 15, 15, 15]


class TestRateLimiter:
    def test_under_limit_does_not_sleep(self, monkeypatch):
        slept = []
        monkeypatch.setattr("charityflow.integrations.base.time.sleep", slept.append)
        limiter = RateLimiter(calls_per_minute=5)
        for _ in range(5):
            limiter.wait_if_needed()
        assert slept == []


class EchoIntegration(IntegrationBase):
    def health_check(self) -> bool:
        return True

    def is_configured(self) -> bool:
        return True


class TestIntegrationBase:
    def test_each_instance_gets_its_own_policy(self):
        first = EchoIntegration()
        second = EchoIntegration()
        assert first.retry_policy is not second.retry_policy

    def test_policy_passed_in_is_used(self):
        func = Flaky(1, StoreError("locked"))
        policy = RetryPolicy(max_retries=1, base_delay=0, sleep=lambda s: None)
        integration = EchoIntegration(retry_policy=policy)

        assert integration.retry_policy is policy
        assert integration.with_retry(func, (StoreError,)) == "ok"
        assert func.calls == 2
