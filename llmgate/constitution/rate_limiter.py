"""
Per-identity request rate ceiling.

Implements a fixed 60-second window per identity with thread-safe
operations. A window resets only once it is strictly older than 60 seconds.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
SWEEP_INTERVAL_SECONDS = 300.0
STALE_AFTER_SECONDS = WINDOW_SECONDS * 2


@dataclass
class RateWindow:
    """Request count for one identity in its current window."""
    count: int
    window_start: float


class FixedWindowRateLimiter:
    """Thread-safe fixed-window rate limiter keyed by client identity."""

    def __init__(self, limit: int = 60, enabled: bool = True):
        """
        Initialize rate limiter.

        Args:
            limit: Maximum requests per identity per window, 0 disables
            enabled: Master toggle; a disabled limiter admits everything
        """
        self.limit = limit
        self.enabled = enabled
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.enabled and self.limit > 0

    def admit(self, identity: str, now: Optional[float] = None) -> bool:
        """
        Record a request and check it against the ceiling.

        Args:
            identity: Client identity (usually the client IP)
            now: Current time in seconds, defaults to a monotonic clock

        Returns:
            True if the request is admitted, False if rate limited
        """
        if not self.active:
            return True

        now = time.monotonic() if now is None else now

        with self._lock:
            window = self._windows.get(identity)
            if window is None or now - window.window_start > WINDOW_SECONDS:
                self._windows[identity] = RateWindow(count=1, window_start=now)
                return True

            window.count += 1
            return window.count <= self.limit

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Remove entries whose window started more than two windows ago.

        Returns:
            Number of entries removed
        """
        now = time.monotonic() if now is None else now
        cutoff = now - STALE_AFTER_SECONDS

        with self._lock:
            stale = [identity for identity, window in self._windows.items() if window.window_start < cutoff]

        removed = 0
        for identity in stale:
            with self._lock:
                window = self._windows.get(identity)
                # Re-check: the identity may have opened a fresh window meanwhile
                if window is not None and window.window_start < cutoff:
                    del self._windows[identity]
                    removed += 1

        if removed:
            logger.debug(f"Swept {removed} stale rate-limit entries")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def get_stats(self) -> dict:
        """Get rate limiter statistics."""
        with self._lock:
            return {
                "tracked_identities": len(self._windows),
                "requests_per_minute": self.limit,
                "enabled": self.active,
            }
