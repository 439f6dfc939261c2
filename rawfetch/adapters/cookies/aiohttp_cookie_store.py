# /rawfetch/adapters/cookies/aiohttp_cookie_store.py
from __future__ import annotations

import asyncio
import logging
from http.cookies import CookieError, SimpleCookie

import aiohttp
from yarl import URL

from rawfetch.config import settings

LOG = logging.getLogger("adapter.cookie_store")


class AiohttpCookieStore:
    """
    Loop-aware wrapper over aiohttp's CookieJar.
    The jar binds to the event loop it was created on, so it is built lazily
    and rebuilt (empty) when a different loop shows up.
    """

    def __init__(self, unsafe: bool | None = None) -> None:
        self._unsafe = settings.COOKIES_UNSAFE if unsafe is None else unsafe
        self._jar: aiohttp.CookieJar | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _ensure_jar(self) -> aiohttp.CookieJar:
        loop = asyncio.get_running_loop()
        if self._jar is None or self._loop is not loop:
            if self._jar is not None:
                LOG.info("cookie_jar.reset", extra={"extra": {"reason": "event loop changed"}})
            self._jar = aiohttp.CookieJar(unsafe=self._unsafe)
            self._loop = loop
        return self._jar

    def retrieve(self, host: str, path: str, secure: bool) -> list[tuple[str, str]]:
        url = URL.build(scheme="https" if secure else "http", host=host, path=path or "/", encoded=True)
        cookies = self._ensure_jar().filter_cookies(url)
        morsels = sorted(cookies.values(), key=lambda m: len(m["path"] or "/"), reverse=True)
        return [(m.key, m.value) for m in morsels]

    def store(self, set_cookie: str, url: str) -> None:
        cookie: SimpleCookie = SimpleCookie()
        try:
            cookie.load(set_cookie)
        except CookieError as e:
            LOG.warning("cookie.rejected", extra={"extra": {"url": url, "error": str(e)}})
            return
        self._ensure_jar().update_cookies(cookie, response_url=URL(url))

    def __len__(self) -> int:
        return 0 if self._jar is None else len(self._jar)
