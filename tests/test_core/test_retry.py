"""
Tests for Retry Utilities

Tests for scriptvision/core/retry.py
"""

import pytest

from scriptvision.core.retry import RetryConfig, calculate_delay, planner_retry_config, retry_async_call
from scriptvision.llm.api_clients import APIError, APITimeoutError, RateLimitError

NO_WAIT = RetryConfig(max_retries=2, base_delay=0, jitter=False, retryable_exceptions=(RateLimitError,))


class Flaky:
    """Fails a fixed number of times before succeeding."""

    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestCalculateDelay:
    """Tests for backoff arithmetic."""

    def test_exponential(self):
        config = RetryConfig(base_delay=1.0, jitter=False)
        assert [calculate_delay(i, config) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        config = RetryConfig(base_delay=10.0, max_delay=15.0, jitter=False)
        assert calculate_delay(3, config) == 15.0

    def test_jitter_range(self):
        config = RetryConfig(base_delay=2.0, jitter=True, jitter_range=(0.5, 1.5))
        assert 1.0 <= calculate_delay(0, config) <= 3.0


class TestRetryAsyncCall:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_recovers(self):
        func = Flaky(2, RateLimitError("busy", 429))
        retries = []

        result = await retry_async_call(func, "ok", config=NO_WAIT, on_retry=lambda e, n: retries.append(n))

        assert result == "ok"
        assert func.calls == 3
        assert retries == [0, 1]

    @pytest.mark.asyncio
    async def test_gives_up(self):
        func = Flaky(5, RateLimitError("busy", 429))
        with pytest.raises(RateLimitError):
            await retry_async_call(func, "ok", config=NO_WAIT)
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = Flaky(1, APIError("HTTP 500: down", 500))
        with pytest.raises(APIError):
            await retry_async_call(func, "ok", config=NO_WAIT)
        assert func.calls == 1

    def test_planner_policy(self):
        config = planner_retry_config()
        assert config.max_retries == 2
        assert set(config.retryable_exceptions) == {RateLimitError, APITimeoutError}
