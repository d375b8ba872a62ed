"""Per-client fixed-window admission gate for the chat endpoint."""

import time
from collections.abc import Callable, Mapping
from typing import Protocol

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

UNKNOWN_CLIENT = "unknown"


class RateLimitRecord(BaseModel):
    count: int
    window_reset_at: float


class RateLimitStore(Protocol):
    """Counter storage shared by all limiter instances of a deployment.

    ``hit`` must perform the check-then-increment as one atomic operation;
    a multi-process deployment implements it on an external atomic store.
    """

    def hit(self, key: str, now: float, window: float, max_requests: int) -> bool: ...


class InMemoryRateLimitStore:
    """Process-local counters. Lost on restart; safe only single-threaded."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._next_sweep_at = 0.0

    def __len__(self) -> int:
        return len(self._records)

    def hit(self, key: str, now: float, window: float, max_requests: int) -> bool:
        if now >= self._next_sweep_at:
            self._sweep(now)
            self._next_sweep_at = now + window

        record = self._records.get(key)
        if record is None or now >= record.window_reset_at:
            self._records[key] = RateLimitRecord(count=1, window_reset_at=now + window)
            return True
        if record.count >= max_requests:
            return False
        record.count += 1
        return True

    def _sweep(self, now: float) -> None:
        expired = [k for k, r in self._records.items() if now >= r.window_reset_at]
        for k in expired:
            del self._records[k]
        if expired:
            logger.debug(
                "rate_limit_records_swept", removed=len(expired), remaining=len(self._records)
            )

    def get(self, key: str) -> RateLimitRecord | None:
        return self._records.get(key)

    def clear(self) -> None:
        self._records.clear()


class RateLimiter:
    """Allows at most ``max_requests`` per client per ``window`` seconds.

    Args:
        max_requests: Requests admitted per window.
        window: Window length in seconds.
        store: Counter storage; defaults to process memory.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window: float = 60.0,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window = window
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    def allow(self, client_key: str) -> bool:
        allowed = self.store.hit(client_key, self._clock(), self.window, self.max_requests)
        if not allowed:
            logger.warning("rate_limited", client=client_key, max_requests=self.max_requests)
        return allowed


def client_key(headers: Mapping[str, str]) -> str:
    """Identify the caller from proxy headers.

    Coarse on purpose: clients that share a key only make the limit stricter.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT
