"""
Per-key rate limiting backed by the Django cache.

The cache is Redis in production, so counters are shared by every worker
process instead of living in module-level dictionaries.
"""

import logging
import time
from dataclasses import dataclass

from django.core.cache import cache

from services.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class FixedWindowLimiter:
    """
    Allow at most ``limit`` hits per ``window_seconds`` for each key.

    Windows are aligned to the epoch so that all workers agree on which
    counter a hit belongs to.
    """
    scope: str
    limit: int
    window_seconds: int

    def _cache_key(self, key) -> str:
        window = int(time.time() // self.window_seconds)
        return f"ratelimit:{self.scope}:{key}:{window}"

    def hit(self, key) -> bool:
        """Record one hit. Returns False once the window is exhausted."""
        cache_key = self._cache_key(key)
        # add() is atomic: only the first hit in the window creates the counter
        if cache.add(cache_key, 1, timeout=self.window_seconds + 1):
            return True
        try:
            count = cache.incr(cache_key)
        except ValueError:
            # Counter expired between add() and incr()
            cache.add(cache_key, 1, timeout=self.window_seconds + 1)
            return True
        return count <= self.limit

    def check(self, key) -> None:
        """Like hit() but raises RateLimitExceeded when over the limit."""
        if not self.hit(key):
            logger.warning("Rate limit hit for %s:%s", self.scope, key)
            raise RateLimitExceeded(
                f"Limit of {self.limit} requests per {self.window_seconds}s exceeded"
            )

    def reset(self, key) -> None:
        cache.delete(self._cache_key(key))
