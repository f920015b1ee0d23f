from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..constants import DEFAULT_BACKOFF_DELAYS, DEFAULT_MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def scheduled_delay(attempt: int, delays: Sequence[float]) -> float:
    """Delay before retry ``attempt`` (0-based), clamped to the last entry."""
    if not delays:
        return 0.0
    return delays[min(attempt, len(delays) - 1)]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    delays: Optional[Sequence[float]] = None,
) -> T:
    """Await ``operation`` until it succeeds or ``max_retries`` retries fail.

    Between attempts the helper sleeps for the next entry of ``delays``
    (seconds); the last entry is reused once the schedule runs out. The
    final failure is re-raised unchanged.
    """

    delays = DEFAULT_BACKOFF_DELAYS if delays is None else delays
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries:
                logger.warning(f"Operation failed after {attempt + 1} attempts: {e}")
                raise
            delay = scheduled_delay(attempt, delays)
            logger.debug(f"Attempt {attempt + 1} failed ({e}); retrying in {delay}s")
            attempt += 1
            await asyncio.sleep(delay)
