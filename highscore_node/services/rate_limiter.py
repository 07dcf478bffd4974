"""Per-submitter rate limiting over a key/value store with expiry."""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from highscore_node.entities.score import RateLimitEntry
from highscore_node.errors import RateLimitStoreError
from highscore_node.interfaces.rate_limit_store import RateLimitStore

KEY_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0


ALLOWED = RateLimitDecision(allowed=True)


class RateLimiter:
    """Allows one accepted submission per key per window.

    The check and the write are separate calls so the caller can skip the
    write when the submission is not forwarded. Concurrent requests for the
    same key may both pass the check; that race is tolerated.
    """

    def __init__(
        self,
        store: RateLimitStore,
        window_seconds: int = 30,
        ttl_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.window_seconds = window_seconds
        self.ttl_seconds = max(ttl_seconds, window_seconds)
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def key_for(source_address: str) -> str:
        return f"{KEY_PREFIX}{source_address}"

    def fetch_entry(self, source_address: str) -> RateLimitEntry | None:
        raw = self.store.get(self.key_for(source_address))
        if raw is None:
            return None
        try:
            return RateLimitEntry(key=source_address, last_accepted_at=int(raw))
        except (TypeError, ValueError):
            self.logger.warning("ignoring unreadable rate limit entry for %s: %r", source_address, raw)
            return None

    def check(self, source_address: str) -> RateLimitDecision:
        try:
            entry = self.fetch_entry(source_address)
        except RateLimitStoreError as exc:
            # Fail open: the workflow's strictly-greater compare keeps the record safe.
            self.logger.error("rate limit store read failed, allowing %s: %s", source_address, exc)
            return ALLOWED

        if entry is None:
            return ALLOWED

        now_ms = self._now_ms()
        elapsed_ms = now_ms - entry.last_accepted_at
        window_ms = self.window_seconds * 1000
        if elapsed_ms >= window_ms:
            return ALLOWED

        retry_after = max(1, math.ceil((window_ms - elapsed_ms) / 1000))
        return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

    def record(self, source_address: str) -> None:
        try:
            self.store.set(self.key_for(source_address), str(self._now_ms()), self.ttl_seconds)
        except RateLimitStoreError as exc:
            self.logger.error("rate limit store write failed for %s: %s", source_address, exc)

    def check_and_record(self, source_address: str) -> RateLimitDecision:
        decision = self.check(source_address)
        if decision.allowed:
            self.record(source_address)
        return decision

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)
