"""Per-IP, per-path rate limiting backed by the ``limits`` package.

Counters live in a storage shared by every ``Auth`` instance in the process
(memory by default, or any ``limits`` storage URI such as ``redis://``).
Auth instances are rebuilt per request, so the instance only decides which
rule applies; the bucket outlives it.
"""

from __future__ import annotations

import fnmatch
import time

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .errors import AuthAPIError
from .options import RateLimitOptions

_limiters: dict[str, FixedWindowRateLimiter] = {}


def get_limiter(storage_uri: str = "memory://") -> FixedWindowRateLimiter:
    """Process-wide limiter for a storage URI."""
    limiter = _limiters.get(storage_uri)
    if limiter is None:
        limiter = FixedWindowRateLimiter(storage_from_string(storage_uri))
        _limiters[storage_uri] = limiter
    return limiter


def reset_limiters() -> None:
    """Forget every counter. For testing."""
    for limiter in _limiters.values():
        limiter.storage.reset()
    _limiters.clear()


class RateLimiter:
    def __init__(self, options: RateLimitOptions, limiter: FixedWindowRateLimiter | None = None) -> None:
        self.options = options
        self.limiter = limiter or get_limiter(options.storage)

    def rule_for(self, path: str) -> RateLimitItem:
        for pattern, rule in self.options.rules.items():
            if fnmatch.fnmatchcase(path, pattern):
                return RateLimitItemPerSecond(rule.max, rule.window)
        return RateLimitItemPerSecond(self.options.max, self.options.window)

    def check(self, ip: str, path: str) -> None:
        """Count one request for (ip, path); raise 429 once the window is full."""
        item = self.rule_for(path)
        if self.limiter.hit(item, ip, path):
            return
        reset_at, _remaining = self.limiter.get_window_stats(item, ip, path)
        retry_after = max(int(reset_at - time.time()), 1)
        raise AuthAPIError(
            429,
            "TOO_MANY_REQUESTS",
            "Too many requests. Please try again later.",
            headers={"X-Retry-After": str(retry_after)},
        )
