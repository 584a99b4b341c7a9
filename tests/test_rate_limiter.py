import redis

from barberhub import rate_limiter
from barberhub.rate_limiter import check_rate_limit


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")


def setup_function():
    with rate_limiter.cache_lock:
        rate_limiter.memory_cache.clear()


def test_memory_window_allows_up_to_the_limit():
    results = [check_rate_limit("public_review:1.2.3.4", 2, 60) for _ in range(3)]

    assert [allowed for allowed, _, _ in results] == [True, True, False]
    assert results[-1][1] == 3
    assert 0 < results[-1][2] <= 60


def test_window_restarts_once_it_expires(monkeypatch):
    monkeypatch.setattr(rate_limiter.time, "time", lambda: 1000)
    check_rate_limit("public_review:1.2.3.4", 1, 60)
    assert check_rate_limit("public_review:1.2.3.4", 1, 60)[0] is False

    monkeypatch.setattr(rate_limiter.time, "time", lambda: 1060)
    assert check_rate_limit("public_review:1.2.3.4", 1, 60) == (True, 1, 60)


def test_redis_failure_falls_back_to_memory():
    allowed, count, _ = check_rate_limit("public_review:5.6.7.8", 1, 60, client=BrokenRedis())

    assert allowed is True
    assert count == 1
    assert "public_review:5.6.7.8" in rate_limiter.memory_cache
