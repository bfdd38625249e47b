"""Rate Limiter for faucet HTTP requests.

Features:
- Per-client request budget per fixed time window
- Redis-backed counters shared across processes
- In-memory fallback for development
"""

import logging
import time
from dataclasses import dataclass

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def _format_retry(seconds: int) -> str:
    """Format retry delay for user display."""
    if seconds < 60:
        return f"Too many requests, please retry in {seconds} seconds"
    minutes = seconds // 60
    remaining_seconds = seconds % 60
    if remaining_seconds > 0:
        return f"Too many requests, please retry in {minutes}m {remaining_seconds}s"
    return f"Too many requests, please retry in {minutes} minutes"


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int  # Requests left in the current window
    retry_after_seconds: int | None  # Seconds until the window resets, when denied
    reason: str | None  # Rejection reason if not allowed


class RateLimiter:
    """Fixed-window request limiter keyed by client (usually the IP address).

    Parameters
    ----------
    max_requests : int
        Requests allowed per window.
    window_minutes : int
        Window length in minutes.
    redis : Redis | None
        Redis client. If None, uses in-memory storage.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_minutes: int = 15,
        redis: Redis | None = None,
    ):
        self._max_requests = max_requests
        self._window_seconds = window_minutes * 60
        self._redis = redis

        # In-memory fallback storage: key -> (window start, count)
        self._memory_windows: dict[str, tuple[int, int]] = {}

    def _window_start(self, now: float) -> int:
        return int(now // self._window_seconds) * self._window_seconds

    def _get_window_key(self, key: str, window_start: int) -> str:
        """Get Redis key for a window counter."""
        return f"faucet:ratelimit:{key}:{window_start}"

    def _result(self, count: int, now: float, window_start: int) -> RateLimitResult:
        if count > self._max_requests:
            retry_after = max(1, int(window_start + self._window_seconds - now))
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=retry_after,
                reason=_format_retry(retry_after),
            )
        return RateLimitResult(
            allowed=True,
            remaining=self._max_requests - count,
            retry_after_seconds=None,
            reason=None,
        )

    async def hit(self, key: str) -> RateLimitResult:
        """Count a request and decide whether it may proceed.

        Parameters
        ----------
        key : str
            Client identifier (e.g., IP address).

        Returns
        -------
        RateLimitResult
            Whether the request is allowed and rate limit info.
        """
        now = time.time()
        window_start = self._window_start(now)

        if self._redis:
            try:
                count = self._hit_redis(key, window_start)
                return self._result(count, now, window_start)
            except RedisError as e:
                logger.warning(
                    "Redis rate limit failed, using in-memory rate limiting",
                    extra={"error": str(e)},
                )

        return self._result(self._hit_memory(key, window_start), now, window_start)

    def _hit_redis(self, key: str, window_start: int) -> int:
        window_key = self._get_window_key(key, window_start)
        pipe = self._redis.pipeline()
        pipe.incr(window_key)
        pipe.expire(window_key, self._window_seconds)
        count, _ = pipe.execute()
        return int(count)

    def _hit_memory(self, key: str, window_start: int) -> int:
        start, count = self._memory_windows.get(key, (window_start, 0))
        if start != window_start:
            count = 0
        count += 1
        self._memory_windows[key] = (window_start, count)

        # Drop counters from past windows
        if len(self._memory_windows) > 10000:
            self._memory_windows = {
                k: v for k, v in self._memory_windows.items() if v[0] == window_start
            }
        return count

    async def get_remaining(self, key: str) -> int:
        """Requests left for a client in the current window, without counting one."""
        window_start = self._window_start(time.time())
        if self._redis:
            count = int(self._redis.get(self._get_window_key(key, window_start)) or 0)
        else:
            start, count = self._memory_windows.get(key, (window_start, 0))
            if start != window_start:
                count = 0
        return max(0, self._max_requests - count)

    def reset(self, key: str) -> None:
        """Reset the current window for a client (admin function)."""
        if self._redis:
            window_start = self._window_start(time.time())
            self._redis.delete(self._get_window_key(key, window_start))
        else:
            self._memory_windows.pop(key, None)

        logger.info("Rate limit reset", extra={"key": key})
