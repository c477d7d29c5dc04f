"""Per-identity message rate limiting (in-process, fixed one-minute windows)."""

import time
from dataclasses import dataclass
from typing import Callable

from invoice_chat.core.errors import RateLimited

WINDOW_SECONDS = 60.0


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, limit: int, window: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window = window
        self.clock = clock
        self._windows: dict[str, _Window] = {}
        self._next_sweep = clock() + window

    def check(self, identity: str) -> int:
        """Count one message for identity. Returns the remaining allowance or raises RateLimited."""
        now = self.clock()
        if now > self._next_sweep:
            self._sweep(now)
        window = self._windows.get(identity)
        if window is None or now > window.reset_at:
            self._windows[identity] = _Window(count=1, reset_at=now + self.window)
            return self.limit - 1
        if window.count >= self.limit:
            raise RateLimited()
        window.count += 1
        return self.limit - window.count

    def _sweep(self, now: float) -> None:
        # Drops windows that have already reset
        self._windows = {k: w for k, w in self._windows.items() if now <= w.reset_at}
        self._next_sweep = now + self.window

    def __len__(self) -> int:
        return len(self._windows)
