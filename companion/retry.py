"""Retry policy with exponential backoff and jitter.

The policy only decides and computes; callers do the waiting. Use
``retry_async`` to run an awaitable factory under a policy.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import anthropic
import httpx

from companion.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Timeout and transport-level failures (no HTTP status attached)
RETRYABLE_ERROR_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TransportError,
    anthropic.APIConnectionError,
)

JITTER_RATIO = 0.2


def _status_of(error: BaseException) -> int | None:
    """Return the HTTP status carried by an error, if any."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    if isinstance(response, httpx.Response):
        return response.status_code
    return None


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient.

    An error with an HTTP status is judged by the status alone. Cancellation
    is never retryable.
    """
    if isinstance(error, asyncio.CancelledError):
        return False

    status = _status_of(error)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    return isinstance(error, RETRYABLE_ERROR_TYPES)


class RetryPolicy:
    """Attempt counter plus backoff calculator.

    Args:
        max_attempts: Attempts after which the policy is exhausted.
        base_delay_ms: Delay for the first retry, before jitter.
        max_delay_ms: Cap applied before jitter.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
    ) -> None:
        self.max_attempts = settings.retry_max_attempts if max_attempts is None else max_attempts
        self.base_delay_ms = (
            settings.retry_base_delay_ms if base_delay_ms is None else base_delay_ms
        )
        self.max_delay_ms = settings.retry_max_delay_ms if max_delay_ms is None else max_delay_ms
        self._attempts = 0
        self._last_error: BaseException | None = None

    @property
    def attempt_count(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    def record_attempt(self) -> None:
        self._attempts += 1

    def is_exhausted(self) -> bool:
        return self._attempts >= self.max_attempts

    def should_retry(self, error: BaseException) -> bool:
        """Return True if *error* is transient and attempts remain."""
        self._last_error = error
        if self.is_exhausted():
            return False
        return is_retryable_error(error)

    def next_delay(self) -> int:
        """Delay in milliseconds for the current attempt, jitter included."""
        exponent = max(self._attempts, 1) - 1
        capped = min(self.base_delay_ms * (2**exponent), self.max_delay_ms)
        jitter = capped * JITTER_RATIO * random.uniform(-1.0, 1.0)
        return round(capped + jitter)

    def reset(self) -> None:
        self._attempts = 0
        self._last_error = None


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    description: str = "call",
) -> T:
    """Await ``fn()`` until it succeeds or *policy* declines another attempt.

    The last error is re-raised once the policy is exhausted or the error
    is not retryable.
    """
    policy = policy or RetryPolicy()
    while True:
        try:
            return await fn()
        except Exception as exc:
            policy.record_attempt()
            if not policy.should_retry(exc):
                raise
            delay_ms = policy.next_delay()
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %dms",
                description,
                policy.attempt_count,
                policy.max_attempts,
                exc,
                delay_ms,
            )
            await asyncio.sleep(delay_ms / 1000)
