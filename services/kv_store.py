"""Key-value store — the shared backing store for credentials, quota and feedback.

Provides an abstract interface with an in-memory implementation (tests,
single-process development) and a Redis implementation (multi-worker
deployments).  Components receive a store handle at construction; there is
no module-level store instance.

All consistency relies on the store's own primitives: set membership,
atomic ``INCR`` and ``MULTI``-wrapped pipelines.  No application-level locks.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


# ── Abstract Interface ───────────────────────────────────────


class KeyValueStore(ABC):
    """Abstract key-value store — implement for different backends."""

    # Sets

    @abstractmethod
    async def sadd(self, key: str, member: str) -> bool:
        """Add *member*; True if it was not already present."""
        ...

    @abstractmethod
    async def srem(self, key: str, member: str) -> bool:
        """Remove *member*; True if it was present."""
        ...

    @abstractmethod
    async def sismember(self, key: str, member: str) -> bool: ...

    @abstractmethod
    async def smembers(self, key: str) -> set[str]: ...

    @abstractmethod
    async def scard(self, key: str) -> int: ...

    # Strings / counters

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        """Set *key*, optionally expiring after *ex* seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def replace(self, key: str, value: str) -> bool:
        """Overwrite *key* only if it exists; False if it was missing.

        The existing TTL is dropped, as with a plain ``set``.
        """
        ...

    @abstractmethod
    async def mget(self, keys: list[str]) -> list[str | None]: ...

    @abstractmethod
    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment *key* by one and (re)set its TTL.

        Returns the value after increment.  Concurrent callers never lose
        an increment.
        """
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds until *key* expires; -1 if no TTL, -2 if missing."""
        ...

    # Lists

    @abstractmethod
    async def lpush_capped(self, key: str, value: str, max_len: int) -> list[str]:
        """Push to the head and trim the list to its newest *max_len* items.

        Returns the items the trim removed, oldest last.
        """
        ...

    @abstractmethod
    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]: ...

    # Lifecycle

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ── In-Memory Implementation ────────────────────────────────


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store with lazy TTL expiration.

    Every method body runs without awaiting, so under asyncio each operation
    is atomic with respect to other tasks.  ``clock`` is injectable so tests
    can move time forward.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sets: dict[str, set[str]] = {}
        self._values: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._expiry: dict[str, float] = {}

    def _purge_if_expired(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._lists.pop(key, None)
            self._expiry.pop(key, None)

    async def sadd(self, key: str, member: str) -> bool:
        self._purge_if_expired(key)
        members = self._sets.setdefault(key, set())
        if member in members:
            return False
        members.add(member)
        return True

    async def srem(self, key: str, member: str) -> bool:
        self._purge_if_expired(key)
        members = self._sets.get(key)
        if not members or member not in members:
            return False
        members.discard(member)
        return True

    async def sismember(self, key: str, member: str) -> bool:
        self._purge_if_expired(key)
        return member in self._sets.get(key, set())

    async def smembers(self, key: str) -> set[str]:
        self._purge_if_expired(key)
        return set(self._sets.get(key, set()))

    async def scard(self, key: str) -> int:
        self._purge_if_expired(key)
        return len(self._sets.get(key, set()))

    async def get(self, key: str) -> str | None:
        self._purge_if_expired(key)
        return self._values.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._values[key] = value
        if ex is not None:
            self._expiry[key] = self._clock() + ex
        else:
            self._expiry.pop(key, None)

    async def delete(self, key: str) -> bool:
        self._purge_if_expired(key)
        existed = any(
            key in d for d in (self._values, self._sets, self._lists)
        )
        self._values.pop(key, None)
        self._sets.pop(key, None)
        self._lists.pop(key, None)
        self._expiry.pop(key, None)
        return existed

    async def replace(self, key: str, value: str) -> bool:
        self._purge_if_expired(key)
        if key not in self._values:
            return False
        self._values[key] = value
        self._expiry.pop(key, None)
        return True

    async def mget(self, keys: list[str]) -> list[str | None]:
        for key in keys:
            self._purge_if_expired(key)
        return [self._values.get(key) for key in keys]

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        self._purge_if_expired(key)
        value = int(self._values.get(key, "0")) + 1
        self._values[key] = str(value)
        self._expiry[key] = self._clock() + ttl_seconds
        return value

    async def ttl(self, key: str) -> int:
        self._purge_if_expired(key)
        if not any(key in d for d in (self._values, self._sets, self._lists)):
            return -2
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return -1
        return int(expires_at - self._clock())

    async def lpush_capped(self, key: str, value: str, max_len: int) -> list[str]:
        self._purge_if_expired(key)
        items = self._lists.setdefault(key, [])
        items.insert(0, value)
        evicted = items[max_len:]
        del items[max_len:]
        return evicted

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        self._purge_if_expired(key)
        items = self._lists.get(key, [])
        # Redis LRANGE end index is inclusive
        stop = None if end == -1 else end + 1
        return list(items[start:stop])


# ── Redis Implementation ─────────────────────────────────────


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store.

    Multi-step writes (increment + TTL, push + trim) run in a ``MULTI``
    pipeline so they apply atomically.
    """

    def __init__(self, redis_url: str = "", client=None) -> None:
        if client is not None:
            # Must be created with decode_responses=True.
            self._redis = client
            return
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )

    async def sadd(self, key: str, member: str) -> bool:
        return await self._redis.sadd(key, member) == 1

    async def srem(self, key: str, member: str) -> bool:
        return await self._redis.srem(key, member) == 1

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._redis.sismember(key, member))

    async def smembers(self, key: str) -> set[str]:
        return set(await self._redis.smembers(key))

    async def scard(self, key: str) -> int:
        return int(await self._redis.scard(key))

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        await self._redis.set(key, value, ex=ex)

    async def delete(self, key: str) -> bool:
        return await self._redis.delete(key) == 1

    async def replace(self, key: str, value: str) -> bool:
        return bool(await self._redis.set(key, value, xx=True))

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return list(await self._redis.mget(keys))

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds)
            value, _ = await pipe.execute()
        return int(value)

    async def ttl(self, key: str) -> int:
        return int(await self._redis.ttl(key))

    async def lpush_capped(self, key: str, value: str, max_len: int) -> list[str]:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lpush(key, value)
            pipe.lrange(key, max_len, -1)
            pipe.ltrim(key, 0, max_len - 1)
            _, evicted, _ = await pipe.execute()
        return list(evicted)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        return list(await self._redis.lrange(key, start, end))

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()


def create_kv_store(store_type: str, redis_url: str = "") -> KeyValueStore:
    """Build the configured store; falls back to memory when Redis is unset."""
    if store_type == "redis" and redis_url:
        logger.info("Initialized RedisKeyValueStore")
        return RedisKeyValueStore(redis_url)
    if store_type == "redis":
        logger.warning("STORE_TYPE=redis but REDIS_URL is empty — using in-memory store")
    logger.info("Initialized InMemoryKeyValueStore")
    return InMemoryKeyValueStore()
