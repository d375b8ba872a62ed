"""Trailing-edge debouncing for persistence writes."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class Debouncer:
    """Coalesces a burst of calls into one trailing invocation.

    Each call replaces the pending arguments and re-arms the timer. Once no
    call has arrived for ``wait`` seconds, ``fn`` runs once with the arguments
    of the last call. Must be called from within a running event loop.

    Args:
        fn: Synchronous callable to invoke.
        wait: Quiet period in seconds.
    """

    def __init__(self, fn: Callable[..., Any], wait: float):
        self.fn = fn
        self.wait = wait
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._handle: asyncio.TimerHandle | None = None
        self.call_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self._pending = (args, kwargs)
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.wait, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self.call_count += 1
        try:
            self.fn(*args, **kwargs)
        except Exception:
            logger.exception("debounced_call_failed", fn=getattr(self.fn, "__name__", repr(self.fn)))

    def flush(self) -> None:
        """Run the pending call now, if any."""
        if self._handle is not None:
            self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        """Drop the pending call without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None


def debounce(fn: Callable[..., Any], wait: float) -> Debouncer:
    return Debouncer(fn, wait)
