# /rawfetch/ports/cookie_store.py
from __future__ import annotations

from typing import Protocol


class CookieStorePort(Protocol):
    def retrieve(self, host: str, path: str, secure: bool) -> list[tuple[str, str]]:
        """Return (name, value) pairs matching the target, most specific path first."""

    def store(self, set_cookie: str, url: str) -> None:
        """Remember one Set-Cookie header value received from url."""
