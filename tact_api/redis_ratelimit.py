import logging
import os
import time
from typing import Dict, Optional, Tuple

import redis

from tact_api.ratelimit import MAX_REQUESTS, WINDOW_SECONDS, RateLimiter, RouteLimit, load_route_limits

log = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "").strip()
RESET_BATCH = 500


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)) or default)
    except ValueError:
        log.warning("ratelimit: %s is not a number; using %s", name, default)
        return default


REDIS_TIMEOUT = _env_float("REDIS_RATELIMIT_TIMEOUT", 0.35)


class RedisRateLimiter:
    """
    Fixed-window Redis rate limiter with the same API as tact_api.ratelimit.RateLimiter.
    Counters are shared by every process pointing at the same Redis.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        limits: Optional[Dict[str, RouteLimit]] = None,
        client=None,
    ) -> None:
        self.redis_url = (redis_url or REDIS_URL or "redis://localhost:6379/0").strip()
        self.limits = dict(limits) if limits is not None else load_route_limits()
        # Connection is lazy; nothing hits the network until the first command.
        self._client = client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=REDIS_TIMEOUT,
            socket_connect_timeout=REDIS_TIMEOUT,
        )

    def limit_for(self, bucket: str) -> RouteLimit:
        return self.limits.get(bucket) or RouteLimit(WINDOW_SECONDS, MAX_REQUESTS)

    def _bucket_key(self, bucket: str, key: str, window_start: int) -> str:
        bucket = (bucket or "default").strip() or "default"
        user_key = (key or "anon").strip() or "anon"
        return f"tact:rl:{bucket}:{user_key}:{window_start}"

    def check_and_increment(self, bucket: str, key: str, now: Optional[int] = None) -> Tuple[bool, int, int]:
        """
        Returns (allowed, remaining, reset_ts) for the provided bucket/key.
        """
        limit = self.limit_for(bucket)
        current_ts = now or int(time.time())
        window_start = current_ts - (current_ts % limit.window_seconds)
        bucket_key = self._bucket_key(bucket, key, window_start)
        pipe = self._client.pipeline()
        pipe.incr(bucket_key, 1)
        pipe.expire(bucket_key, limit.window_seconds)
        count, _ = pipe.execute()
        used = int(count)
        remaining = max(0, limit.max_requests - used)
        return (used <= limit.max_requests, remaining, window_start + limit.window_seconds)

    def reset(self) -> int:
        """Delete every tact:rl:* counter in batches; returns how many keys went."""
        removed = 0
        batch = []
        for k in self._client.scan_iter(match="tact:rl:*", count=RESET_BATCH):
            batch.append(k)
            if len(batch) >= RESET_BATCH:
                removed += self._client.delete(*batch)
                batch = []
        if batch:
            removed += self._client.delete(*batch)
        return removed


class FallbackRateLimiter:
    """Redis first; on any Redis error the in-process limiter answers instead."""

    def __init__(self, primary: RedisRateLimiter, fallback: RateLimiter) -> None:
        self.primary = primary
        self.fallback = fallback

    def check_and_increment(self, bucket: str, key: str) -> Tuple[bool, int, int]:
        try:
            return self.primary.check_and_increment(bucket, key)
        except redis.RedisError as e:
            log.warning("ratelimit: redis unavailable (%s); using in-process limiter", e)
            return self.fallback.check_and_increment(bucket, key)

    def reset(self) -> None:
        self.fallback.reset()
        try:
            self.primary.reset()
        except redis.RedisError as e:
            log.warning("ratelimit: could not clear redis counters: %s", e)
