from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt)
    await asyncio.sleep(delay)


async def call_with_retries(
    func: Callable[[], Awaitable[T]], max_retries: int, label: str = "call"
) -> T:
    """Await ``func`` retrying up to ``max_retries`` times with backoff.

    The last exception is re-raised once attempts are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= max_retries:
                raise
            attempt += 1
            logger.warning(f"{label} failed ({exc}); retry {attempt}/{max_retries}")
            await schedule_retry(attempt)
