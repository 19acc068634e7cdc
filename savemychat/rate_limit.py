from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class _Window:
    started_at: float
    count: int = 0


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_s: float = 60.0) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def allow(self, key: str, *, now: float | None = None) -> bool:
        if self.max_requests <= 0:
            return True
        current = time.monotonic() if now is None else now
        with self._lock:
            window = self._windows.get(key)
            if window is None or current - window.started_at >= self.window_s:
                window = _Window(started_at=current)
                self._windows[key] = window
                self._prune(current)
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def _prune(self, now: float) -> None:
        stale = [k for k, w in self._windows.items() if now - w.started_at >= self.window_s]
        for key in stale:
            del self._windows[key]
