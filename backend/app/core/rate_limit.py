# In backend/core/rate_limit.py

"""
Per-user request limits for the routes that spend LLM or TTS calls.

Each (scope, user) pair keeps the timestamps of its recent requests in a
sliding window. A request is admitted while fewer than the scope's limit
fall inside the window. State is in-process; a multi-instance deployment
needs a shared store instead.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

from app.core.config import settings

logger = logging.getLogger(__name__)

# Script synthesis and job-less audio are the expensive calls.
SCOPE_GENERATE = "generate"
SCOPE_DEFAULT = "default"


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    @property
    def retry_after(self) -> int:
        """Whole seconds until the next request would be admitted."""
        return max(1, math.ceil(self.reset_after))


class RateLimiter:
    """Sliding-window request counter keyed by scope and user."""

    def __init__(
        self,
        limits: Dict[str, int],
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limits = limits
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        return cls(
            limits={
                SCOPE_GENERATE: settings.RATE_LIMIT_GENERATE_PER_WINDOW,
                SCOPE_DEFAULT: settings.RATE_LIMIT_DEFAULT_PER_WINDOW,
            },
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    def limit_for(self, scope: str) -> int:
        return self.limits.get(scope, self.limits.get(SCOPE_DEFAULT, 60))

    def check(self, scope: str, identifier: str) -> RateLimitResult:
        """Record a request if it is within the limit and report the window state."""
        limit = self.limit_for(scope)
        now = self.clock()
        with self._lock:
            hits = self._hits.setdefault((scope, identifier), deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()

            if len(hits) >= limit:
                reset_after = self.window_seconds - (now - hits[0])
                logger.warning(f"RateLimiter: '{scope}' limit of {limit} reached for user {identifier}")
                return RateLimitResult(allowed=False, limit=limit, remaining=0, reset_after=reset_after)

            hits.append(now)
            reset_after = self.window_seconds - (now - hits[0])
            return RateLimitResult(allowed=True, limit=limit, remaining=limit - len(hits), reset_after=reset_after)

    def reset(self, identifier: Optional[str] = None):
        """Forget recorded requests, for one user or for everyone."""
        with self._lock:
            if identifier is None:
                self._hits.clear()
                return
            for key in [key for key in self._hits if key[1] == identifier]:
                del self._hits[key]


# Create a singleton instance shared by all requests
rate_limiter = RateLimiter.from_settings()


def get_rate_limiter() -> RateLimiter:
    return rate_limiter
