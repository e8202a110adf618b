from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

from ..errors import RefreshTimeout
from ..models import TokenRecord

if TYPE_CHECKING:
    from ..broker import TokenBroker

logger = logging.getLogger(__name__)


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt)
    await asyncio.sleep(delay)


async def ensure_fresh_with_retry(
    broker: TokenBroker, identity: str, attempts: int = 3
) -> TokenRecord:
    """Call ``broker.ensure_fresh`` and back off on :class:`RefreshTimeout`.

    Other errors need user action and are raised immediately.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await broker.ensure_fresh(identity)
        except RefreshTimeout:
            if attempt >= attempts:
                raise
            logger.info(f"Refresh for {identity} timed out, retry {attempt}/{attempts - 1}")
            await schedule_retry(attempt)
    raise ValueError("attempts must be at least 1")
