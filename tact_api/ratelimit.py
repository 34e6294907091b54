from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

log = logging.getLogger(__name__)

ANALYZE = "analyze"
PARALLAX_CHAT = "parallax_chat"
PARALLAX_DRAFT = "parallax_draft"
BUCKETS = (ANALYZE, PARALLAX_CHAT, PARALLAX_DRAFT)


def _env_int(name: str, default: int) -> int:
    try:
        val = int(os.getenv(name, str(default)) or default)
    except ValueError:
        log.warning("ratelimit: %s is not an integer; using %d", name, default)
        return default
    return val if val > 0 else default


WINDOW_SECONDS: int = _env_int("RATE_WINDOW_SECONDS", 60)
MAX_REQUESTS: int = _env_int("RATE_MAX_REQUESTS", 10)


@dataclass(frozen=True)
class RouteLimit:
    window_seconds: int
    max_requests: int


def load_route_limits(buckets: Iterable[str] = BUCKETS) -> Dict[str, RouteLimit]:
    """Per-bucket limits: RATE_LIMIT_<BUCKET>_WINDOW / _MAX, else the global defaults."""
    limits: Dict[str, RouteLimit] = {}
    for bucket in buckets:
        prefix = f"RATE_LIMIT_{bucket.upper()}"
        limits[bucket] = RouteLimit(
            window_seconds=_env_int(f"{prefix}_WINDOW", WINDOW_SECONDS),
            max_requests=_env_int(f"{prefix}_MAX", MAX_REQUESTS),
        )
    return limits


class RateLimiter:
    """Fixed-window counter per (bucket, client key), held in process memory.

    Counters vanish on restart. The (max_requests + 1)-th call inside one
    window is refused; the window restarts on the first call after it ends.
    """

    def __init__(
        self,
        limits: Optional[Dict[str, RouteLimit]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limits = dict(limits) if limits is not None else load_route_limits()
        self._clock = clock
        self._store: Dict[Tuple[str, str], Dict[str, int]] = {}

    def limit_for(self, bucket: str) -> RouteLimit:
        return self.limits.get(bucket) or RouteLimit(WINDOW_SECONDS, MAX_REQUESTS)

    def _now(self) -> int:
        return int(self._clock())

    def _bk(self, bucket: str, key: str) -> Tuple[str, str]:
        return (bucket or "default", key or "anon")

    def _ensure_entry(self, bucket: str, key: str) -> Dict[str, int]:
        k = self._bk(bucket, key)
        now = self._now()
        entry = self._store.get(k)
        if entry is None or now >= entry["reset_ts"]:
            entry = {"count": 0, "reset_ts": now + self.limit_for(bucket).window_seconds}
            self._store[k] = entry
        return entry

    def check_and_increment(self, bucket: str, key: str) -> Tuple[bool, int, int]:
        """Count one request; returns (allowed, remaining, reset_ts)."""
        limit = self.limit_for(bucket)
        entry = self._ensure_entry(bucket, key)
        if entry["count"] < limit.max_requests:
            entry["count"] += 1
            return True, max(0, limit.max_requests - entry["count"]), entry["reset_ts"]
        return False, 0, entry["reset_ts"]

    def reset(self) -> None:
        self._store.clear()
