"""
NoteWise Backend — Per-Caller Rate Limiter
===========================================

What:  Fixed-window request gate keyed by the authenticated caller id.
Who:   AnalysisService, after request validation and before the AI call.
When:  Once per analysis request.

Algorithm: Fixed Window Counter
    1. No window for the caller, or now > window_reset_at:
       start a new window {count=1, reset_at=now+W} and allow
    2. Otherwise increment count; allow iff count <= N

    With N=10, W=60s the 11th call inside a window is denied, and a call made
    just after window_reset_at opens a fresh window.

Scope:
    State lives in this process only. Each serving instance enforces its own
    cap; a multi-instance deployment that needs a global cap must move the
    counters into a shared store (e.g. Redis INCR + EXPIRE).
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    count: int
    window_reset_at: float


class RateLimiter:
    """
    In-memory fixed window limiter.

    Constructed once per process (see main.create_app) and shared by all
    requests. The window map is guarded by a lock so that concurrent
    read-modify-write cycles from threadpool workers stay consistent.
    """

    # Expired windows are pruned every CLEANUP_INTERVAL admissions.
    CLEANUP_INTERVAL = 1000

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._admissions = 0

    def admit(self, caller_id: str) -> bool:
        """
        Record one request for `caller_id` and report whether it may proceed.

        Raises:
            ValueError: caller_id is empty.
        """
        if not caller_id:
            raise ValueError("caller_id must be a non-empty string")

        with self._lock:
            now = self._clock()
            window = self._windows.get(caller_id)

            if window is None or now > window.window_reset_at:
                self._windows[caller_id] = RateWindow(
                    count=1, window_reset_at=now + self.window_seconds
                )
                allowed = True
            else:
                window.count += 1
                allowed = window.count <= self.max_requests

            self._admissions += 1
            if self._admissions % self.CLEANUP_INTERVAL == 0:
                self._cleanup_expired(now)

        if not allowed:
            logger.warning(
                "Rate limit exceeded for caller %s: more than %d requests in %ss window",
                caller_id,
                self.max_requests,
                self.window_seconds,
            )
        return allowed

    def _cleanup_expired(self, now: float) -> None:
        """Drops windows that have already reset. Caller must hold the lock."""
        expired = [
            caller for caller, window in self._windows.items()
            if now > window.window_reset_at
        ]
        for caller in expired:
            del self._windows[caller]

        if expired:
            logger.debug("Cleaned up %d expired rate windows", len(expired))
