# /rawfetch/adapters/cache/memory_cache_store.py
from __future__ import annotations


class MemoryCacheStore:
    """Process-local cache; used when no Redis URL is configured."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, bytes]] = {}

    async def lookup(self, url: str) -> str | None:
        entry = self._entries.get(url)
        return entry[0] if entry else None

    async def load(self, url: str) -> bytes | None:
        entry = self._entries.get(url)
        return entry[1] if entry else None

    async def store(self, url: str, body: bytes, last_modified: str) -> None:
        self._entries[url] = (last_modified, body)
