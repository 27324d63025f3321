from mediconnect.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter


def test_memory_rate_limiter_allows_then_blocks():
    rl = InMemoryRateLimiter()
    key = "k1"
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is False
    # Separate keys have separate budgets
    assert rl.allow("k2", max_requests=2, window_seconds=60) is True


def test_memory_rate_limiter_window_expires(monkeypatch):
    from mediconnect.infrastructure.rate_limit import memory_rate_limiter as mod

    clock = [1000.0]
    monkeypatch.setattr(mod.time, "time", lambda: clock[0])
    rl = InMemoryRateLimiter()
    assert rl.allow("k", 1, 60) is True
    assert rl.allow("k", 1, 60) is False
    clock[0] += 61
    assert rl.allow("k", 1, 60) is True


def test_redis_rate_limiter_with_fake(monkeypatch):
    from mediconnect.infrastructure.rate_limit import redis_rate_limiter as mod

    class FakePipe:
        def __init__(self, client):
            self.client = client
            self.ops = []

        def incr(self, k, n):
            self.ops.append(("incr", k, n))
            return self

        def expire(self, k, s):
            self.ops.append(("expire", k, s))
            return self

        def execute(self):
            results = []
            for op, k, arg in self.ops:
                if op == "incr":
                    self.client.store[k] = self.client.store.get(k, 0) + arg
                    results.append(self.client.store[k])
                else:
                    results.append(True)
            return results

    class FakeRedis:
        def __init__(self):
            self.store = {}

        @classmethod
        def from_url(cls, url):
            return cls()

        def pipeline(self):
            return FakePipe(self)

    monkeypatch.setattr(mod.redis, "Redis", FakeRedis)

    rl = mod.RedisRateLimiter(url="redis://fake")
    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is False
    assert rl.client.store == {"rl:k1:60": 3}
