"""Reusable async retry loop with pluggable backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def linear_backoff(unit: float) -> Callable[[int], float]:
    """Delay of ``attempt * unit`` seconds after the given failed attempt."""

    def _delay(attempt: int) -> float:
        return attempt * unit

    return _delay


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    *,
    attempts: int,
    backoff: Callable[[int], float],
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation(attempt)`` until it succeeds or ``attempts`` are used up.

    ``attempt`` is 1-based. After a failed attempt the loop waits
    ``backoff(attempt)`` seconds before trying again; the last exception is
    re-raised once the budget is exhausted. Exceptions outside ``retry_on``
    propagate immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(attempt)
        except retry_on as exc:
            if attempt >= attempts:
                logger.warning("%s failed after %d attempt(s): %s", label, attempt, exc)
                raise
            delay = backoff(attempt)
            logger.info("%s failed (attempt %d/%d): %s; retrying in %.1fs", label, attempt, attempts, exc, delay)
            if delay > 0:
                await sleep(delay)
