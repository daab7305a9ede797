"""Tests for the in-memory key-value backend."""

import pytest

from app.store.backend import InMemoryBackend, WrongTypeError, create_backend


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="kv")
def kv_fixture(clock: FakeClock) -> InMemoryBackend:
    return InMemoryBackend(clock=clock)


class TestStrings:
    async def test_set_get_delete(self, kv: InMemoryBackend):
        await kv.set("a", "1")
        assert await kv.get("a") == "1"
        assert await kv.delete("a", "missing") == 1
        assert await kv.get("a") is None

    async def test_ttl_expiry(self, kv: InMemoryBackend, clock: FakeClock):
        await kv.set("token", "user-1", ex=60)
        assert await kv.ttl("token") == 60
        clock.now += 59
        assert await kv.get("token") == "user-1"
        clock.now += 1
        assert await kv.get("token") is None
        assert await kv.ttl("token") == -2

    async def test_expire_on_missing_key(self, kv: InMemoryBackend):
        assert await kv.expire("nope", 10) is False

    async def test_ttl_without_expiry(self, kv: InMemoryBackend):
        await kv.set("a", "1")
        assert await kv.ttl("a") == -1


class TestHashes:
    async def test_hset_hget_hgetall(self, kv: InMemoryBackend):
        assert await kv.hset("h", {"a": "1", "b": 2}) == 2
        assert await kv.hset("h", {"a": "3"}) == 0
        assert await kv.hget("h", "a") == "3"
        assert await kv.hgetall("h") == {"a": "3", "b": "2"}

    async def test_hgetall_missing_is_empty(self, kv: InMemoryBackend):
        assert await kv.hgetall("missing") == {}

    async def test_hsetnx(self, kv: InMemoryBackend):
        assert await kv.hsetnx("h", "email", "id-1") is True
        assert await kv.hsetnx("h", "email", "id-2") is False
        assert await kv.hget("h", "email") == "id-1"

    async def test_hdel_removes_empty_hash(self, kv: InMemoryBackend):
        await kv.hset("h", {"a": "1"})
        assert await kv.hdel("h", "a", "b") == 1
        assert await kv.exists("h") is False

    async def test_wrong_type(self, kv: InMemoryBackend):
        await kv.set("s", "1")
        with pytest.raises(WrongTypeError):
            await kv.hget("s", "a")


class TestSortedSets:
    async def test_range_by_score_in_order(self, kv: InMemoryBackend):
        await kv.zadd("z", {"b": 2, "a": 1, "c": 3})
        assert await kv.zrangebyscore("z", "-inf", "+inf") == ["a", "b", "c"]
        assert await kv.zrangebyscore("z", 2, 3) == ["b", "c"]

    async def test_nx_keeps_existing_score(self, kv: InMemoryBackend):
        await kv.zadd("z", {"a": 5})
        assert await kv.zadd("z", {"a": 1}, nx=True) == 0
        assert await kv.zrangebyscore("z", 5, 5) == ["a"]

    async def test_remove_range(self, kv: InMemoryBackend):
        await kv.zadd("z", {"a": 1, "b": 2, "c": 3})
        assert await kv.zremrangebyscore("z", 0, 2) == 2
        assert await kv.zrangebyscore("z", "-inf", "+inf") == ["c"]


class TestKeysAndBatches:
    async def test_keys_glob(self, kv: InMemoryBackend):
        await kv.hset("user:admin:1", {"id": "1"})
        await kv.hset("user:customer:2", {"id": "2"})
        await kv.hset("user:idByEmail", {"x": "1"})
        assert await kv.keys("user:admin:*") == ["user:admin:1"]

    async def test_batch_applies_all_commands(self, kv: InMemoryBackend):
        replies = await kv.batch().hset("h", {"a": "1"}).set("s", "v", ex=5).zadd("z", {"m": 1}).delete("h").execute()
        assert replies == [1, True, 1, 1]
        assert await kv.get("s") == "v"
        assert await kv.exists("h") is False

    async def test_flush(self, kv: InMemoryBackend):
        await kv.set("a", "1")
        await kv.flush()
        assert await kv.keys("*") == []


def test_create_backend_rejects_unknown_kind():
    with pytest.raises(ValueError):
        create_backend("memcached")


def test_create_backend_memory():
    assert isinstance(create_backend("memory"), InMemoryBackend)
