"""
Key-value backends.

Two implementations of the same surface: Redis (through `redis.asyncio`) for
deployed instances and a process-local in-memory store used in development and
tests. Only the commands the user store and the event log need are exposed:
strings, hashes, sorted sets, key TTLs, glob key scans and transactional batches.

Values are always returned as `str`; the Redis client is created with
`decode_responses=True` so both backends agree.
"""

from __future__ import annotations

import fnmatch
import functools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import redis
import redis.asyncio as aioredis

logger = logging.getLogger("sesame")

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

Score = float | int | str


class StoreError(Exception):
    """A backend command failed."""


class WrongTypeError(StoreError):
    """A command was issued against a key holding another kind of value."""


class Batch(ABC):
    """Commands queued for execution as one transaction (MULTI/EXEC)."""

    @abstractmethod
    def set(self, key: str, value: str, ex: int | None = None) -> "Batch": ...

    @abstractmethod
    def delete(self, *keys: str) -> "Batch": ...

    @abstractmethod
    def expire(self, key: str, seconds: int) -> "Batch": ...

    @abstractmethod
    def hset(self, key: str, mapping: Mapping[str, Any]) -> "Batch": ...

    @abstractmethod
    def hdel(self, key: str, *fields: str) -> "Batch": ...

    @abstractmethod
    def zadd(self, key: str, mapping: Mapping[str, Score], nx: bool = False) -> "Batch": ...

    @abstractmethod
    async def execute(self) -> list[Any]:
        """Run the queued commands, returning one reply per command."""
        ...


class KeyValueBackend(ABC):
    """Abstract interface for key-value backends."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ex: int | None = None) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool: ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds left before `key` expires, -1 without TTL, -2 when missing."""
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]: ...

    @abstractmethod
    async def hget(self, key: str, field: str) -> str | None: ...

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    async def hset(self, key: str, mapping: Mapping[str, Any]) -> int: ...

    @abstractmethod
    async def hsetnx(self, key: str, field: str, value: str) -> bool:
        """Set `field` only if absent; True when the field was written."""
        ...

    @abstractmethod
    async def hdel(self, key: str, *fields: str) -> int: ...

    @abstractmethod
    async def zadd(self, key: str, mapping: Mapping[str, Score], nx: bool = False) -> int: ...

    @abstractmethod
    async def zrangebyscore(self, key: str, min: Score, max: Score) -> list[str]: ...

    @abstractmethod
    async def zremrangebyscore(self, key: str, min: Score, max: Score) -> int: ...

    @abstractmethod
    def batch(self) -> Batch: ...

    @abstractmethod
    async def flush(self) -> None:
        """Drop every key of the selected database."""
        ...

    @abstractmethod
    async def close(self) -> None: ...


# --- In-memory backend ---


class InMemoryBatch(Batch):
    """Queued commands applied back to back, with no suspension point in between."""

    def __init__(self, backend: "InMemoryBackend") -> None:
        self._backend = backend
        self._commands: list[tuple[Callable[..., Any], tuple, dict]] = []

    def _queue(self, command: Callable[..., Any], *args: Any, **kwargs: Any) -> "InMemoryBatch":
        self._commands.append((command, args, kwargs))
        return self

    def set(self, key, value, ex=None):
        return self._queue(self._backend._set, key, value, ex)

    def delete(self, *keys):
        return self._queue(self._backend._delete, *keys)

    def expire(self, key, seconds):
        return self._queue(self._backend._expire, key, seconds)

    def hset(self, key, mapping):
        return self._queue(self._backend._hset, key, mapping)

    def hdel(self, key, *fields):
        return self._queue(self._backend._hdel, key, *fields)

    def zadd(self, key, mapping, nx=False):
        return self._queue(self._backend._zadd, key, mapping, nx)

    async def execute(self) -> list[Any]:
        commands, self._commands = self._commands, []
        return [command(*args, **kwargs) for command, args, kwargs in commands]


class InMemoryBackend(KeyValueBackend):
    """Process-local store with Redis command semantics.

    Expired keys are dropped lazily when touched. Every public coroutine completes
    without suspending, so a batch is never interleaved with another request.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._clock = clock

    # Synchronous commands, shared with InMemoryBatch

    def _alive(self, key: str) -> bool:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self._clock():
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def _typed(self, key: str, kind: type) -> Any:
        if not self._alive(key):
            return None
        value = self._data[key]
        if type(value) is not kind:
            raise WrongTypeError(f"Operation against key {key} holding the wrong kind of value")
        return value

    def _set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._data[key] = str(value)
        self._expires.pop(key, None)
        if ex is not None:
            self._expires[key] = self._clock() + ex
        return True

    def _delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                del self._data[key]
                removed += 1
            self._expires.pop(key, None)
        return removed

    def _expire(self, key: str, seconds: int) -> bool:
        if not self._alive(key):
            return False
        self._expires[key] = self._clock() + seconds
        return True

    def _hset(self, key: str, mapping: Mapping[str, Any]) -> int:
        hash_ = self._typed(key, dict)
        if hash_ is None:
            hash_ = self._data[key] = {}
        added = sum(1 for field in mapping if field not in hash_)
        hash_.update({field: str(value) for field, value in mapping.items()})
        return added

    def _hdel(self, key: str, *fields: str) -> int:
        hash_ = self._typed(key, dict)
        if hash_ is None:
            return 0
        removed = sum(1 for field in fields if hash_.pop(field, None) is not None)
        if not hash_:
            self._delete(key)
        return removed

    def _zadd(self, key: str, mapping: Mapping[str, Score], nx: bool = False) -> int:
        zset = self._typed(key, _SortedSet)
        if zset is None:
            zset = self._data[key] = _SortedSet()
        added = 0
        for member, score in mapping.items():
            if member in zset:
                if not nx:
                    zset[member] = float(score)
                continue
            zset[member] = float(score)
            added += 1
        return added

    # Public coroutines

    async def get(self, key):
        return self._typed(key, str)

    async def set(self, key, value, ex=None):
        self._set(key, value, ex)

    async def delete(self, *keys):
        return self._delete(*keys)

    async def exists(self, key):
        return self._alive(key)

    async def expire(self, key, seconds):
        return self._expire(key, seconds)

    async def ttl(self, key):
        if not self._alive(key):
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return max(0, round(deadline - self._clock()))

    async def keys(self, pattern):
        return sorted(key for key in list(self._data) if self._alive(key) and fnmatch.fnmatchcase(key, pattern))

    async def hget(self, key, field):
        hash_ = self._typed(key, dict)
        return None if hash_ is None else hash_.get(field)

    async def hgetall(self, key):
        hash_ = self._typed(key, dict)
        return dict(hash_) if hash_ else {}

    async def hset(self, key, mapping):
        return self._hset(key, mapping)

    async def hsetnx(self, key, field, value):
        hash_ = self._typed(key, dict)
        if hash_ is not None and field in hash_:
            return False
        self._hset(key, {field: value})
        return True

    async def hdel(self, key, *fields):
        return self._hdel(key, *fields)

    async def zadd(self, key, mapping, nx=False):
        return self._zadd(key, mapping, nx)

    async def zrangebyscore(self, key, min, max):
        zset = self._typed(key, _SortedSet)
        if zset is None:
            return []
        low, high = float(min), float(max)
        return [member for member, score in zset.ordered() if low <= score <= high]

    async def zremrangebyscore(self, key, min, max):
        zset = self._typed(key, _SortedSet)
        if zset is None:
            return 0
        low, high = float(min), float(max)
        doomed = [member for member, score in zset.items() if low <= score <= high]
        for member in doomed:
            del zset[member]
        if not zset:
            self._delete(key)
        return len(doomed)

    def batch(self) -> Batch:
        return InMemoryBatch(self)

    async def flush(self):
        self._data.clear()
        self._expires.clear()

    async def close(self):
        return None


class _SortedSet(dict):
    """Member -> score mapping ordered like a Redis sorted set."""

    def ordered(self) -> list[tuple[str, float]]:
        return sorted(self.items(), key=lambda item: (item[1], item[0]))


# --- Redis backend ---


def _translate_errors(func: F) -> F:
    """Re-raise client failures as StoreError so callers stay backend-agnostic."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except redis.ResponseError as e:
            if "WRONGTYPE" in str(e):
                raise WrongTypeError(str(e)) from e
            raise StoreError(str(e)) from e
        except redis.RedisError as e:
            raise StoreError(f"Redis command failed: {e}") from e

    return wrapper  # type: ignore[return-value]


class RedisBatch(Batch):
    """Thin wrapper around a transactional Redis pipeline."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._pipe = client.pipeline(transaction=True)

    def set(self, key, value, ex=None):
        self._pipe.set(key, value, ex=ex)
        return self

    def delete(self, *keys):
        self._pipe.delete(*keys)
        return self

    def expire(self, key, seconds):
        self._pipe.expire(key, seconds)
        return self

    def hset(self, key, mapping):
        self._pipe.hset(key, mapping=dict(mapping))
        return self

    def hdel(self, key, *fields):
        self._pipe.hdel(key, *fields)
        return self

    def zadd(self, key, mapping, nx=False):
        self._pipe.zadd(key, dict(mapping), nx=nx)
        return self

    @_translate_errors
    async def execute(self) -> list[Any]:
        return await self._pipe.execute()


class RedisBackend(KeyValueBackend):
    """
    Redis-backed store.

    The client is connection-pooled and safe to share between concurrent requests;
    connections are checked out when a command runs.
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        logger.debug("New Redis connection pool at %s", url)
        return cls(aioredis.from_url(url, decode_responses=True))

    @_translate_errors
    async def get(self, key):
        return await self._client.get(key)

    @_translate_errors
    async def set(self, key, value, ex=None):
        await self._client.set(key, value, ex=ex)

    @_translate_errors
    async def delete(self, *keys):
        return await self._client.delete(*keys)

    @_translate_errors
    async def exists(self, key):
        return bool(await self._client.exists(key))

    @_translate_errors
    async def expire(self, key, seconds):
        return bool(await self._client.expire(key, seconds))

    @_translate_errors
    async def ttl(self, key):
        return await self._client.ttl(key)

    @_translate_errors
    async def keys(self, pattern):
        # SCAN, not KEYS: the scan is incremental
        return sorted([key async for key in self._client.scan_iter(match=pattern)])

    @_translate_errors
    async def hget(self, key, field):
        return await self._client.hget(key, field)

    @_translate_errors
    async def hgetall(self, key):
        return await self._client.hgetall(key)

    @_translate_errors
    async def hset(self, key, mapping):
        return await self._client.hset(key, mapping=dict(mapping))

    @_translate_errors
    async def hsetnx(self, key, field, value):
        return bool(await self._client.hsetnx(key, field, value))

    @_translate_errors
    async def hdel(self, key, *fields):
        return await self._client.hdel(key, *fields)

    @_translate_errors
    async def zadd(self, key, mapping, nx=False):
        return await self._client.zadd(key, dict(mapping), nx=nx)

    @_translate_errors
    async def zrangebyscore(self, key, min, max):
        return await self._client.zrangebyscore(key, min, max)

    @_translate_errors
    async def zremrangebyscore(self, key, min, max):
        return await self._client.zremrangebyscore(key, min, max)

    def batch(self) -> Batch:
        return RedisBatch(self._client)

    @_translate_errors
    async def flush(self):
        await self._client.flushdb()

    async def close(self):
        await self._client.aclose()


def create_backend(kind: str, url: str | None = None) -> KeyValueBackend:
    """Build the backend named by the STORE_BACKEND setting."""
    if kind == "memory":
        return InMemoryBackend()
    if kind == "redis":
        if not url:
            raise ValueError("REDIS_URL is required for the redis backend")
        return RedisBackend.from_url(url)
    raise ValueError(f"Unknown store backend {kind!r}")
