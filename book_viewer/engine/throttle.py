"""
Rate limiting between the book and its consumers.

A burst of book changes becomes at most one notification per interval:
- leading edge: the first change after a quiet interval is delivered at once
- trailing edge: later changes inside the interval are coalesced and the
  latest one is delivered when the interval ends

Delivered values are always the newest state; the last change of a burst is
never lost. interval_ms = 0 delivers every change immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOTHING = object()


class UpdateThrottle(Generic[T]):
    """
    Coalescing notifier driven by the running asyncio loop.

    Thread-safety: NOT thread-safe. notify() must be called from the loop.
    """

    __slots__ = ('interval', 'listener', '_pending', '_last_emit', '_timer', 'emit_count')

    def __init__(self, interval_ms: float, listener: Callable[[T], None]) -> None:
        if interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")
        self.interval = interval_ms / 1000.0
        self.listener = listener

        self._pending: object = _NOTHING
        self._last_emit: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.emit_count = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not _NOTHING

    def notify(self, state: T) -> None:
        """Record a new state; deliver now or schedule delivery at the end of the interval."""
        if self.interval == 0:
            self._emit(state)
            return

        self._pending = state
        if self._timer is not None:
            return  # Trailing emit already scheduled; it picks up this state

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._last_emit is None or now - self._last_emit >= self.interval:
            self.flush()
        else:
            delay = self._last_emit + self.interval - now
            self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def flush(self) -> None:
        """Deliver the pending state now, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is _NOTHING:
            return
        state = self._pending
        self._pending = _NOTHING
        self._emit(state)  # type: ignore[arg-type]

    def cancel(self) -> None:
        """Drop any pending state and timer (shutdown)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = _NOTHING

    def _emit(self, state: T) -> None:
        try:
            self._last_emit = asyncio.get_running_loop().time()
        except RuntimeError:
            self._last_emit = None
        self.emit_count += 1
        self.listener(state)
