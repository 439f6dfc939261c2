# /rawfetch/adapters/cache/redis_cache_store.py
from __future__ import annotations

import logging

import redis.asyncio as redis

LOG = logging.getLogger("adapter.cache_store.redis")


class RedisCacheStore:
    def __init__(self, redis_url: str, prefix: str = "rawfetch:cache", ttl: int | None = None) -> None:
        self._r = redis.Redis.from_url(redis_url)
        self._prefix = prefix
        self._ttl = ttl

    def _key(self, url: str) -> str:
        return f"{self._prefix}:{url}"

    async def lookup(self, url: str) -> str | None:
        value = await self._r.hget(self._key(url), "last_modified")
        if value is None:
            return None
        return value.decode("latin-1") if isinstance(value, bytes) else value

    async def load(self, url: str) -> bytes | None:
        value = await self._r.hget(self._key(url), "body")
        if value is None:
            return None
        return value if isinstance(value, bytes) else value.encode("latin-1")

    async def store(self, url: str, body: bytes, last_modified: str) -> None:
        key = self._key(url)
        await self._r.hset(key, mapping={"last_modified": last_modified, "body": body})
        if self._ttl:
            await self._r.expire(key, self._ttl)
        LOG.info("cache.store", extra={"extra": {"url": url, "bytes": len(body)}})
