"""Sliding-window admission control for manual sync requests."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List

from .errors import RateLimited

DEFAULT_LIMIT = 10
DEFAULT_WINDOW = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlidingWindowLimiter:
    """Admit at most ``limit`` attempts within any trailing ``window``.

    ``check`` and ``record`` share one lock with ``acquire``; concurrent callers
    must go through ``acquire`` so two requests cannot both pass the check before
    either is recorded.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._lock = threading.RLock()
        self._admitted: List[datetime] = []

    def check(self) -> None:
        """Raise ``RateLimited`` if the window is already full."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._admitted) >= self.limit:
                oldest = self._admitted[0]
                raise RateLimited(retry_after=oldest + self.window - now)

    def record(self) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._admitted.append(now)

    def acquire(self) -> None:
        """Check and record as one step."""
        with self._lock:
            self.check()
            self.record()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self.window
        self._admitted = [stamp for stamp in self._admitted if stamp > cutoff]
