"""Async Claude client for the conscious layer: batch and streaming."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anthropic

from companion.config import settings
from companion.llm.prompt import build_system_prompt
from companion.retry import RetryPolicy, retry_async

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from companion.models import Mindstate

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


@dataclass
class Generation:
    """A finished batch generation."""

    text: str
    model: str
    latency_ms: int
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client.

    SDK retries are off; RetryPolicy owns retrying.
    """
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key, max_retries=0)
    return _client


def _request_kwargs(mindstate: Mindstate, message: str, model: str | None) -> dict[str, Any]:
    return {
        "model": model or settings.conscious_model,
        "max_tokens": settings.conscious_max_tokens,
        "temperature": settings.conscious_temperature,
        "system": build_system_prompt(mindstate),
        "messages": [{"role": "user", "content": message}],
    }


async def generate(
    mindstate: Mindstate,
    message: str,
    *,
    model: str | None = None,
    policy: RetryPolicy | None = None,
) -> Generation:
    """Generate a full reply in one call."""
    client = _get_client()
    kwargs = _request_kwargs(mindstate, message, model)

    start = time.monotonic()
    response = await retry_async(
        lambda: client.messages.create(**kwargs),
        policy,
        description="Generation",
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    text = "".join(block.text for block in response.content if block.type == "text")
    usage = getattr(response, "usage", None)
    return Generation(
        text=text,
        model=getattr(response, "model", None) or kwargs["model"],
        latency_ms=latency_ms,
        prompt_tokens=getattr(usage, "input_tokens", None),
        completion_tokens=getattr(usage, "output_tokens", None),
    )


async def stream(
    mindstate: Mindstate,
    message: str,
    *,
    model: str | None = None,
    policy: RetryPolicy | None = None,
) -> AsyncIterator[str]:
    """Yield reply text fragments as they arrive.

    Transient failures are retried only until the first fragment is out;
    after that an error propagates, since the caller already has partial text.
    Closing the generator closes the underlying HTTP stream.
    """
    client = _get_client()
    kwargs = _request_kwargs(mindstate, message, model)
    policy = policy or RetryPolicy()

    while True:
        emitted = False
        try:
            async with client.messages.stream(**kwargs) as response:
                async for text in response.text_stream:
                    emitted = True
                    yield text
            return
        except Exception as exc:
            if emitted:
                raise
            policy.record_attempt()
            if not policy.should_retry(exc):
                raise
            delay_ms = policy.next_delay()
            logger.warning(
                "Generation stream failed (attempt %d/%d), retrying in %dms: %s",
                policy.attempt_count,
                policy.max_attempts,
                delay_ms,
                exc,
            )
            await asyncio.sleep(delay_ms / 1000)
