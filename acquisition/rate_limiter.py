"""
Sliding-window limiter for replay downloads

The v1 get_replay endpoint allows 10 downloads per minute. Admission counts the
downloads started in the trailing window ending now, so bursts are smoothed
instead of being reset at fixed minute boundaries.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """Owns the window of recent replay-download start times"""

    def __init__(self, max_events: int = 10, window_seconds: float = 60.0,
                 logger: Optional[logging.Logger] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self.window_seconds = window_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._sleep = sleep
        self._window = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float):
        while self._window and now - self._window[0] >= self.window_seconds:
            self._window.popleft()

    def active_count(self) -> int:
        """Number of downloads started within the current window"""
        self._prune(self._clock())
        return len(self._window)

    async def admit_replay_download(self):
        """
        Wait until another replay download may start, then record it

        Callers queue on the lock, so the check and the append happen as one step.
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)
            while len(self._window) >= self.max_events:
                wait = max(self.window_seconds - (now - self._window[0]), 0.0)
                self.logger.info(f"Replay rate limit reached, waiting {wait:.1f}s")
                await self._sleep(wait)
                now = self._clock()
                self._prune(now)
            self._window.append(now)
