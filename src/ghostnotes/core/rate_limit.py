"""
Simple in-process rate limiting utilities.

- `cooldown_elapsed`: the global per-user gap between two proximity notifications.
- `SlidingWindowRateLimiter`: caps pushes sent to the notification relay.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field


def cooldown_elapsed(last_ms: float | None, now_ms: float, cooldown_ms: float) -> bool:
    """True when no notification happened yet or `cooldown_ms` has passed since the last."""
    if last_ms is None:
        return True
    return now_ms - last_ms >= cooldown_ms


@dataclass
class SlidingWindowRateLimiter:
    """Allow at most `limit` events per `window_seconds` (best-effort, single process)."""

    limit: int
    window_seconds: float = 60.0
    _hits: deque[float] = field(default_factory=deque, init=False, repr=False)

    def __post_init__(self) -> None:
        if int(self.limit) <= 0:
            raise ValueError("limit must be > 0")
        if float(self.window_seconds) <= 0:
            raise ValueError("window_seconds must be > 0")

    def try_acquire(self) -> bool:
        now = time.monotonic()
        while self._hits and now - self._hits[0] >= self.window_seconds:
            self._hits.popleft()
        if len(self._hits) >= self.limit:
            return False
        self._hits.append(now)
        return True
