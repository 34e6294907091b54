import fnmatch

import redis

from tact_api import ratelimit, redis_ratelimit
from tact_api.ratelimit import ANALYZE, PARALLAX_CHAT, RateLimiter, RouteLimit, load_route_limits
from tact_api.redis_ratelimit import FallbackRateLimiter, RedisRateLimiter


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_ceiling_plus_one_is_rejected():
    rl = RateLimiter({ANALYZE: RouteLimit(60, 3)}, clock=Clock())
    results = [rl.check_and_increment(ANALYZE, "1.2.3.4") for _ in range(4)]
    assert [r[0] for r in results] == [True, True, True, False]
    assert [r[1] for r in results] == [2, 1, 0, 0]


def test_window_resets_after_elapsing():
    clock = Clock()
    rl = RateLimiter({ANALYZE: RouteLimit(60, 1)}, clock=clock)
    allowed, _, reset_ts = rl.check_and_increment(ANALYZE, "ip")
    assert allowed and reset_ts == int(clock.now) + 60
    assert rl.check_and_increment(ANALYZE, "ip")[0] is False
    clock.now += 59
    assert rl.check_and_increment(ANALYZE, "ip")[0] is False
    clock.now += 1
    assert rl.check_and_increment(ANALYZE, "ip")[0] is True


def test_clients_and_routes_are_counted_separately():
    rl = RateLimiter({ANALYZE: RouteLimit(60, 1), PARALLAX_CHAT: RouteLimit(900, 1)}, clock=Clock())
    assert rl.check_and_increment(ANALYZE, "a")[0]
    assert rl.check_and_increment(ANALYZE, "b")[0]
    assert rl.check_and_increment(PARALLAX_CHAT, "a")[0]
    assert not rl.check_and_increment(ANALYZE, "a")[0]


def test_reset_clears_counters():
    rl = RateLimiter({ANALYZE: RouteLimit(60, 1)}, clock=Clock())
    rl.check_and_increment(ANALYZE, "a")
    rl.reset()
    assert rl.check_and_increment(ANALYZE, "a")[0]


def test_route_limits_from_environment(monkeypatch):
    monkeypatch.setattr(ratelimit, "WINDOW_SECONDS", 60)
    monkeypatch.setattr(ratelimit, "MAX_REQUESTS", 10)
    monkeypatch.setenv("RATE_LIMIT_PARALLAX_CHAT_WINDOW", "900")
    monkeypatch.setenv("RATE_LIMIT_PARALLAX_CHAT_MAX", "100")
    monkeypatch.setenv("RATE_LIMIT_ANALYZE_MAX", "not-a-number")
    limits = load_route_limits()
    assert limits[PARALLAX_CHAT] == RouteLimit(900, 100)
    assert limits[ANALYZE] == RouteLimit(60, 10)


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key, amount):
        self.ops.append(("incr", key, amount))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    def execute(self):
        out = []
        for op, key, arg in self.ops:
            if op == "incr":
                self.store[key] = self.store.get(key, 0) + arg
                out.append(self.store[key])
            else:
                out.append(True)
        return out


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.deleted_batches = []

    def pipeline(self):
        return FakePipeline(self.store)

    def scan_iter(self, match="*", count=None):
        return iter([k for k in list(self.store) if fnmatch.fnmatchcase(k, match)])

    def delete(self, *keys):
        self.deleted_batches.append(len(keys))
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("down")

    def scan_iter(self, match="*", count=None):
        raise redis.ConnectionError("down")


def test_redis_limiter_uses_window_aligned_keys():
    client = FakeRedis()
    rl = RedisRateLimiter(limits={ANALYZE: RouteLimit(60, 2)}, client=client)
    now = 1_000_030
    assert rl.check_and_increment(ANALYZE, "ip", now=now) == (True, 1, 1_000_080)
    assert rl.check_and_increment(ANALYZE, "ip", now=now)[0] is True
    assert rl.check_and_increment(ANALYZE, "ip", now=now)[0] is False
    assert list(client.store) == ["tact:rl:analyze:ip:1000020"]


def test_fallback_limiter_survives_redis_outage():
    primary = RedisRateLimiter(limits={ANALYZE: RouteLimit(60, 1)}, client=BrokenRedis())
    fallback = RateLimiter({ANALYZE: RouteLimit(60, 1)}, clock=Clock())
    rl = FallbackRateLimiter(primary, fallback)
    assert rl.check_and_increment(ANALYZE, "ip")[0] is True
    assert rl.check_and_increment(ANALYZE, "ip")[0] is False


def test_redis_reset_clears_only_rate_limit_keys(monkeypatch):
    monkeypatch.setattr(redis_ratelimit, "RESET_BATCH", 2)
    client = FakeRedis()
    client.store["session:abc"] = 1
    rl = RedisRateLimiter(limits={ANALYZE: RouteLimit(60, 1)}, client=client)
    for ip in ("a", "b", "c"):
        rl.check_and_increment(ANALYZE, ip, now=1_000_030)
    assert rl.reset() == 3
    assert list(client.store) == ["session:abc"]
    assert client.deleted_batches == [2, 1]
    assert rl.check_and_increment(ANALYZE, "a", now=1_000_030)[0] is True


def test_fallback_reset_clears_memory_even_when_redis_is_down():
    fallback = RateLimiter({ANALYZE: RouteLimit(60, 1)}, clock=Clock())
    rl = FallbackRateLimiter(RedisRateLimiter(limits={ANALYZE: RouteLimit(60, 1)}, client=BrokenRedis()), fallback)
    rl.check_and_increment(ANALYZE, "ip")
    rl.reset()
    assert fallback.check_and_increment(ANALYZE, "ip")[0] is True


def test_redis_timeout_falls_back_on_bad_value(monkeypatch):
    monkeypatch.setenv("REDIS_RATELIMIT_TIMEOUT", "fast")
    assert redis_ratelimit._env_float("REDIS_RATELIMIT_TIMEOUT", 0.35) == 0.35
    monkeypatch.setenv("REDIS_RATELIMIT_TIMEOUT", "1.5")
    assert redis_ratelimit._env_float("REDIS_RATELIMIT_TIMEOUT", 0.35) == 1.5
