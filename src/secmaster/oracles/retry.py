"""Timeout and exponential backoff around oracle calls.

Every oracle round-trip is bounded by ``timeout_seconds``; failures are
retried up to ``max_attempts`` with exponentially growing delays capped
at ``max_delay``.  Once attempts are exhausted the caller-supplied
error type is raised, chained to the last underlying exception.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from secmaster.errors import ResolutionError
from secmaster.matching.config import RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryConfig,
    *,
    error_cls: type[ResolutionError],
    operation: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``call`` under ``policy``.

    Args:
        call: Zero-argument coroutine factory; invoked once per attempt.
        policy: Attempt cap, timeout and backoff parameters.
        error_cls: Error raised when every attempt failed.
        operation: Short name used in log events and the error message.
        sleep: Injected for tests.

    Returns:
        The first successful result.

    Raises:
        error_cls: After ``policy.max_attempts`` failed attempts.
    """
    delay = policy.base_delay
    last_exc: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await asyncio.wait_for(call(), timeout=policy.timeout_seconds)
        except Exception as e:  # timeouts, transport errors, malformed output
            last_exc = e
            if attempt == policy.max_attempts:
                break
            wait = min(delay, policy.max_delay)
            logger.warning(
                "oracle_call_retry",
                operation=operation,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=wait,
                error=repr(e),
            )
            await sleep(wait)
            delay *= policy.backoff_factor

    raise error_cls(
        f"{operation} failed after {policy.max_attempts} attempt(s): {last_exc!r}"
    ) from last_exc
