"""
Fixed-period tickers with explicit cancellation.

The reveal gate accrues alignment progress on a ticker. Every ticker start returns a
handle that the owner must cancel on every exit path; a ticker that outlives its state
would keep accruing progress for a target the user already walked away from.

Two schedulers are provided:
- `AsyncioScheduler` for live use on an asyncio event loop.
- `ManualScheduler`, a virtual clock used by tests and by trace replay.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TickerHandle(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def start_ticker(self, interval_s: float, callback: Callable[[], None]) -> TickerHandle: ...


class _HandleMixin:
    """Context-manager support shared by ticker handles."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class AsyncioTicker(_HandleMixin):
    def __init__(self, loop: asyncio.AbstractEventLoop, interval_s: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval_s = interval_s
        self._callback = callback
        self._timer: asyncio.TimerHandle | None = loop.call_later(interval_s, self._fire)

    @property
    def active(self) -> bool:
        return self._timer is not None

    def _fire(self) -> None:
        if self._timer is None:
            return
        # Reschedule first so a callback that cancels us wins.
        self._timer = self._loop.call_later(self._interval_s, self._fire)
        self._callback()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class AsyncioScheduler:
    """Runs tickers on an asyncio loop (the running loop by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def start_ticker(self, interval_s: float, callback: Callable[[], None]) -> AsyncioTicker:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        loop = self._loop or asyncio.get_running_loop()
        return AsyncioTicker(loop, float(interval_s), callback)


class ManualTicker(_HandleMixin):
    def __init__(self, scheduler: "ManualScheduler", interval_s: float, callback: Callable[[], None]):
        self._scheduler = scheduler
        self.interval_s = interval_s
        self.callback = callback
        self.next_due = scheduler.now + interval_s
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._scheduler._forget(self)


class ManualScheduler:
    """Deterministic virtual clock; tickers only fire inside `advance()`."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._tickers: list[ManualTicker] = []

    @property
    def now(self) -> float:
        return self._now

    @property
    def active_tickers(self) -> int:
        return len(self._tickers)

    def start_ticker(self, interval_s: float, callback: Callable[[], None]) -> ManualTicker:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        ticker = ManualTicker(self, float(interval_s), callback)
        self._tickers.append(ticker)
        return ticker

    def _forget(self, ticker: ManualTicker) -> None:
        if ticker in self._tickers:
            self._tickers.remove(ticker)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due ticks in time order."""
        if seconds < 0:
            raise ValueError("cannot advance backwards")
        target = self._now + float(seconds)
        # Tolerance keeps 10 x 0.2s from missing the last tick to float drift.
        eps = 1e-9
        while True:
            due = [t for t in self._tickers if t.next_due <= target + eps]
            if not due:
                break
            ticker = min(due, key=lambda t: t.next_due)
            self._now = max(self._now, ticker.next_due)
            ticker.next_due += ticker.interval_s
            ticker.callback()
        self._now = target

    def advance_to(self, timestamp: float) -> None:
        self.advance(max(0.0, float(timestamp) - self._now))
