# /rawfetch/client.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

from rawfetch.adapters.body.form_body_encoder import FormBodyEncoder
from rawfetch.adapters.cache.memory_cache_store import MemoryCacheStore
from rawfetch.adapters.codec.gzip_decompressor import GzipDecompressor
from rawfetch.adapters.cookies.aiohttp_cookie_store import AiohttpCookieStore
from rawfetch.adapters.http.asyncio_transport import AsyncioTransport
from rawfetch.adapters.url.yarl_url_parser import YarlURLParser
from rawfetch.config import Settings, settings
from rawfetch.domain.dispatcher import FetchEngine
from rawfetch.domain.models import Continuation, FetchResponse, RequestDescriptor
from rawfetch.domain.options import FetchOptions
from rawfetch.ports.body_encoder import BodyEncoderPort
from rawfetch.ports.cache_store import CacheStorePort
from rawfetch.ports.cookie_store import CookieStorePort
from rawfetch.ports.decompressor import DecompressorPort
from rawfetch.ports.transport import TransportPort
from rawfetch.ports.url_parser import URLParserPort

LOG = logging.getLogger("rawfetch.client")


class Fetcher:
    """Wires the engine to its collaborators; any of them can be swapped out."""

    def __init__(
        self,
        *,
        url_parser: URLParserPort | None = None,
        transport: TransportPort | None = None,
        body_encoder: BodyEncoderPort | None = None,
        cookie_store: CookieStorePort | None = None,
        cache_store: CacheStorePort | None = None,
        decompressor: DecompressorPort | None = None,
        config: Settings = settings,
    ) -> None:
        self.config = config
        self.cookie_store = cookie_store if cookie_store is not None else AiohttpCookieStore(config.COOKIES_UNSAFE)
        self.cache_store = cache_store if cache_store is not None else MemoryCacheStore()
        self.engine = FetchEngine(
            url_parser or YarlURLParser(),
            transport or AsyncioTransport(config.VERIFY_TLS),
            body_encoder or FormBodyEncoder(),
            cookie_store=self.cookie_store,
            cache_store=self.cache_store,
            decompressor=decompressor if decompressor is not None else GzipDecompressor(),
            user_agent=config.USER_AGENT,
            max_redirects=config.MAX_REDIRECTS,
            tick=config.TIMER_TICK_SECONDS,
        )

    def start(
        self,
        url: str,
        callback: Continuation | None = None,
        **options: Any,
    ) -> RequestDescriptor:
        """Fire-and-continue: dispatch and return at once; callback runs on a later loop turn."""
        options.setdefault("timeout", self.config.TIMEOUT_SECONDS)
        options.setdefault("read_timeout", self.config.READ_TIMEOUT_SECONDS)
        opts = FetchOptions(**options)
        desc = opts.build_descriptor(url, callback)
        desc.done = asyncio.get_running_loop().create_future()
        self.engine.dispatch(desc)
        return desc

    async def fetch(
        self,
        url: str,
        callback: Continuation | None = None,
        **options: Any,
    ) -> FetchResponse | RequestDescriptor | None:
        """
        With wait (the default when no callback is given) this suspends until
        the fetch finished and returns the response, or None when
        ignore_errors suppressed it. Without wait the descriptor is returned
        immediately and `callback` receives the response later.
        """
        wait = options.pop("wait", None)
        if wait is None:
            wait = callback is None
        desc = self.start(url, callback, **options)
        if not wait:
            return desc
        assert desc.done is not None
        return await desc.done


_default: Fetcher | None = None


def default_fetcher() -> Fetcher:
    global _default
    if _default is None:
        _default = Fetcher()
    return _default


async def fetch(url: str, callback: Continuation | None = None, **options: Any) -> Any:
    return await default_fetcher().fetch(url, callback, **options)


def fetch_sync(url: str, **options: Any) -> FetchResponse | None:
    """Blocking fetch on a private event loop."""
    options["wait"] = True

    async def _run() -> FetchResponse | None:
        result = await Fetcher().fetch(url, **options)
        assert result is None or isinstance(result, FetchResponse)
        return result

    return asyncio.run(_run())
