# /rawfetch/ports/cache_store.py
from __future__ import annotations

from typing import Protocol


class CacheStorePort(Protocol):
    async def lookup(self, url: str) -> str | None:
        """Return the stored Last-Modified validator for url, if any."""

    async def load(self, url: str) -> bytes | None:
        """Return the stored body for url, if any."""

    async def store(self, url: str, body: bytes, last_modified: str) -> None:
        """Persist body for url along with its validator."""
