"""Tests for the retry policy and retry_async helper."""

import asyncio
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest

from companion.retry import RetryPolicy, is_retryable_error, retry_async

_REQUEST = httpx.Request("POST", "http://memory.test/search")


def _status_error(code: int) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError(
        f"status {code}", request=_REQUEST, response=httpx.Response(code, request=_REQUEST)
    )


class TestIsRetryableError:
    @pytest.mark.parametrize("code", [429, 500, 502, 503, 504])
    def test_transient_statuses(self, code):
        assert is_retryable_error(_status_error(code))

    @pytest.mark.parametrize("code", [400, 401, 403, 404, 422])
    def test_permanent_statuses(self, code):
        assert not is_retryable_error(_status_error(code))

    def test_transport_errors(self):
        assert is_retryable_error(httpx.ConnectError("refused", request=_REQUEST))
        assert is_retryable_error(httpx.ReadTimeout("slow", request=_REQUEST))

    def test_timeout_and_connection_errors(self):
        assert is_retryable_error(TimeoutError())
        assert is_retryable_error(ConnectionResetError())

    def test_anthropic_rate_limit(self):
        error = anthropic.RateLimitError(
            "rate limited", response=httpx.Response(429, request=_REQUEST), body=None
        )
        assert is_retryable_error(error)

    def test_anthropic_bad_request(self):
        error = anthropic.BadRequestError(
            "bad request", response=httpx.Response(400, request=_REQUEST), body=None
        )
        assert not is_retryable_error(error)

    def test_plain_errors_not_retryable(self):
        assert not is_retryable_error(ValueError("nope"))

    def test_cancellation_not_retryable(self):
        assert not is_retryable_error(asyncio.CancelledError())


class TestRetryPolicy:
    def test_first_delay_within_jitter(self):
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=10000)
        policy.record_attempt()
        for _ in range(50):
            assert 800 <= policy.next_delay() <= 1200

    def test_delay_doubles_per_attempt(self):
        policy = RetryPolicy(max_attempts=10, base_delay_ms=100, max_delay_ms=100000)
        with patch("companion.retry.random.uniform", return_value=0.0):
            delays = []
            for _ in range(4):
                policy.record_attempt()
                delays.append(policy.next_delay())
        assert delays == [100, 200, 400, 800]

    def test_delay_never_exceeds_cap_plus_jitter(self):
        policy = RetryPolicy(max_attempts=100, base_delay_ms=100, max_delay_ms=500)
        for _ in range(60):
            policy.record_attempt()
            assert policy.next_delay() <= 500 * 1.2

    def test_max_jitter_at_cap(self):
        policy = RetryPolicy(max_attempts=100, base_delay_ms=100, max_delay_ms=500)
        for _ in range(30):
            policy.record_attempt()
        with patch("companion.retry.random.uniform", return_value=1.0):
            assert policy.next_delay() == 600

    def test_exhaustion_blocks_retry(self):
        policy = RetryPolicy(max_attempts=2, base_delay_ms=1, max_delay_ms=1)
        error = TimeoutError()
        policy.record_attempt()
        assert policy.should_retry(error)
        policy.record_attempt()
        assert policy.is_exhausted()
        assert not policy.should_retry(error)
        assert policy.last_error is error

    def test_reset(self):
        policy = RetryPolicy(max_attempts=1)
        policy.record_attempt()
        policy.should_retry(TimeoutError())
        policy.reset()
        assert policy.attempt_count == 0
        assert policy.last_error is None
        assert not policy.is_exhausted()

    def test_defaults_from_settings(self, monkeypatch):
        monkeypatch.setattr("companion.config.settings.retry_max_attempts", 7)
        policy = RetryPolicy()
        assert policy.max_attempts == 7


class TestRetryAsync:
    async def test_returns_after_transient_failures(self):
        fn = AsyncMock(side_effect=[_status_error(503), httpx.ConnectError("x"), "ok"])
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1, max_delay_ms=1)

        result = await retry_async(fn, policy)

        assert result == "ok"
        assert fn.await_count == 3

    async def test_permanent_error_raised_immediately(self):
        fn = AsyncMock(side_effect=_status_error(404))
        policy = RetryPolicy(max_attempts=5, base_delay_ms=1, max_delay_ms=1)

        with pytest.raises(httpx.HTTPStatusError):
            await retry_async(fn, policy)
        assert fn.await_count == 1

    async def test_reraises_last_error_when_exhausted(self):
        errors = [TimeoutError("first"), TimeoutError("second"), TimeoutError("third")]
        fn = AsyncMock(side_effect=errors)
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1, max_delay_ms=1)

        with pytest.raises(TimeoutError, match="third"):
            await retry_async(fn, policy)
        assert policy.attempt_count == 3
