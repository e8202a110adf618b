"""Token expiry arithmetic."""

from __future__ import annotations

import time
from typing import Callable, Optional

from .models import TokenRecord

DEFAULT_TTL_SECONDS = 3600
DEFAULT_SKEW_SECONDS = 60


class ExpiryPolicy:
    """Computes absolute expiry and decides whether a record is still usable.

    A record is fresh only while more than ``skew`` seconds remain before
    ``expires_at``, so a token is never handed out just before it lapses.
    """

    def __init__(
        self,
        skew: int = DEFAULT_SKEW_SECONDS,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.skew = skew
        self.default_ttl = default_ttl
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def compute_expiry(self, issued_at: int, ttl_seconds: Optional[int]) -> int:
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl
        return issued_at + ttl_seconds

    def is_fresh(
        self,
        record: TokenRecord,
        now: Optional[int] = None,
        skew: Optional[int] = None,
    ) -> bool:
        now = self.now() if now is None else now
        skew = self.skew if skew is None else skew
        return record.expires_at - now > skew
