"""
Call counters for the acquisition layer

Components record named events here instead of writing to a global logger, and
the caller decides where the numbers go (console summary, log line, ...).
"""

from collections import Counter
from typing import Callable, Dict, Optional


class ApiMetrics:
    """Counts API calls and reports the bearer token's remaining lifetime"""

    def __init__(self):
        self._counts: Counter = Counter()
        self._token_lifetime: Optional[Callable[[], float]] = None

    def record(self, event: str, amount: int = 1):
        self._counts[event] += amount

    def track_token_lifetime(self, remaining_seconds: Callable[[], float]):
        """Read the token's remaining seconds from this callable at snapshot time"""
        self._token_lifetime = remaining_seconds

    def count(self, event: str) -> int:
        return self._counts[event]

    def snapshot(self) -> Dict[str, int]:
        """Current counters, plus token_expiry_minutes once a token was issued"""
        data = dict(self._counts)
        if self._token_lifetime is not None:
            data['token_expiry_minutes'] = int(max(self._token_lifetime(), 0) // 60)
        return data
