"""
Fixed-window request limiter keyed by client address.

Best-effort only: state lives in process memory and is lost on restart.
Bursts straddling a window boundary can reach twice the limit.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from mgnrega_tracker.core.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateWindow:
    count: int
    reset_at: int  # unix ms


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 100,
        window_ms: int = 60000,
        clock: Optional[Clock] = None,
        max_clients: int = 10000,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_clients = max_clients
        self._clock = clock or SystemClock()
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def allow(self, client_id: str) -> bool:
        now = self._clock.now_ms()
        with self._lock:
            current = self._windows.get(client_id)

            if current is None or now > current.reset_at:
                if current is None and len(self._windows) >= self.max_clients:
                    self._make_room(now)
                self._windows[client_id] = RateWindow(count=1, reset_at=now + self.window_ms)
                return True

            if current.count >= self.max_requests:
                return False

            current.count += 1
            return True

    def sweep(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock.now_ms()
        with self._lock:
            return self._sweep(now)

    @property
    def size(self) -> int:
        """Number of clients currently tracked."""
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: int) -> int:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def _make_room(self, now: int) -> None:
        if self._sweep(now):
            return
        # Still full: evict the window closest to expiry
        oldest = min(self._windows, key=lambda key: self._windows[key].reset_at)
        logger.warning("Rate limiter full (%d clients), evicting %s", len(self._windows), oldest)
        del self._windows[oldest]


def client_id_from(forwarded_for: Optional[str], remote_addr: Optional[str]) -> str:
    """First hop of X-Forwarded-For, else the socket address, else 'unknown'."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return remote_addr or UNKNOWN_CLIENT
