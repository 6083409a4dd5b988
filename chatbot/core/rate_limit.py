from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from chatbot.core.locks import KeyedLock


@dataclass
class RateWindow:
    client_id: str
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """Fixed-window request throttle keyed by client identity.

    The first request after a window expires always opens a new window
    with a count of one.
    """

    def __init__(self, window_ms: int, max_requests: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = window_ms / 1000.0
        self.max_requests = max_requests
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._locks = KeyedLock()
        self._sweep_lock = threading.Lock()
        self._next_sweep = clock() + self.window_seconds

    def _sweep(self, now: float) -> None:
        """Drop windows that expired; runs at most once per window length."""
        if now < self._next_sweep or not self._sweep_lock.acquire(blocking=False):
            return
        try:
            self._next_sweep = now + self.window_seconds
            for client_id in list(self._windows):
                with self._locks.hold(client_id):
                    window = self._windows.get(client_id)
                    if window is not None and window.window_reset_at <= now:
                        del self._windows[client_id]
        finally:
            self._sweep_lock.release()

    def check(self, client_id: str) -> RateDecision:
        self._sweep(self._clock())
        with self._locks.hold(client_id):
            now = self._clock()
            window = self._windows.get(client_id)
            if window is None or window.window_reset_at <= now:
                self._windows[client_id] = RateWindow(client_id, 1, now + self.window_seconds)
                return RateDecision(allowed=True)
            if window.count >= self.max_requests:
                return RateDecision(allowed=False, retry_after=max(1, math.ceil(window.window_reset_at - now)))
            window.count += 1
            return RateDecision(allowed=True)

    def allow(self, client_id: str) -> bool:
        return self.check(client_id).allowed

    def __len__(self) -> int:
        return len(self._windows)
