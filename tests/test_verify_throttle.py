import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.settings import settings
from app.utils import verify_throttle


class FakeRedis:
    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds

    async def setex(self, key, seconds, value):
        self.values[key] = value
        self.ttls[key] = seconds

    async def delete(self, key):
        self.values.pop(key, None)


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("down")

    async def incr(self, key):
        raise RedisConnectionError("down")


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()
    monkeypatch.setattr(verify_throttle, "get_redis_client", lambda: redis)
    monkeypatch.setattr(settings, "verify_failure_limit", 3)
    monkeypatch.setattr(settings, "verify_lockout_minutes", 2)
    return redis


@pytest.mark.asyncio
async def test_lockout_after_repeated_failures(fake_redis):
    for _ in range(2):
        await verify_throttle.register_verify_attempt(7, "10.0.0.5", False)
    assert await verify_throttle.is_throttled(7, "10.0.0.5") is False

    await verify_throttle.register_verify_attempt(7, "10.0.0.5", False)

    assert await verify_throttle.is_throttled(7, "10.0.0.5") is True
    assert fake_redis.ttls["verify_lock:7:10.0.0.5"] == 120
    assert "verify_fail:7:10.0.0.5" not in fake_redis.values


@pytest.mark.asyncio
async def test_lockout_is_per_intercom_and_client(fake_redis):
    for _ in range(3):
        await verify_throttle.register_verify_attempt(7, "10.0.0.5", False)

    assert await verify_throttle.is_throttled(8, "10.0.0.5") is False
    assert await verify_throttle.is_throttled(7, "10.0.0.6") is False


@pytest.mark.asyncio
async def test_success_clears_failure_count(fake_redis):
    await verify_throttle.register_verify_attempt(7, None, False)
    await verify_throttle.register_verify_attempt(7, None, False)
    await verify_throttle.register_verify_attempt(7, None, True)
    await verify_throttle.register_verify_attempt(7, None, False)

    assert fake_redis.values["verify_fail:7:unknown"] == 1
    assert await verify_throttle.is_throttled(7, None) is False


@pytest.mark.asyncio
async def test_redis_outage_fails_open(monkeypatch):
    monkeypatch.setattr(verify_throttle, "get_redis_client", lambda: BrokenRedis())

    assert await verify_throttle.is_throttled(7, "10.0.0.5") is False
    await verify_throttle.register_verify_attempt(7, "10.0.0.5", False)
