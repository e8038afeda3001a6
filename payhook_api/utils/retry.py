"""Bounded retry with exponential backoff and jitter.

Used on the order-transition path, where a transient store failure must be
retried a few times before the webhook is failed back to the sender.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
) -> float:
    """Exponential delay for a zero-based attempt number, with +/- jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter > 0:
        jitter_amount = delay * jitter
        delay += random.uniform(-jitter_amount, jitter_amount)
    return max(delay, 0.0)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    is_retryable: Callable[[BaseException], bool],
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 2.0,
    jitter: float = 0.3,
    operation: str = "call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` until it succeeds or ``max_attempts`` is exhausted.

    Exceptions rejected by ``is_retryable`` propagate immediately. The last
    exception is re-raised after the final attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts):
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt == max_attempts - 1:
                raise
            delay = compute_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "RETRY_SCHEDULED",
                extra={
                    "attempt": attempt + 1,
                    "max_attempts": max_attempts,
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "delay_s": round(delay, 3),
                },
            )
            await sleep(delay)

    raise AssertionError("unreachable")
