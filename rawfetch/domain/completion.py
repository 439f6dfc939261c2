# /rawfetch/domain/completion.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from email.utils import formatdate
from typing import Any

from multidict import CIMultiDictProxy

from rawfetch.domain.body_processor import BodyProcessor
from rawfetch.domain.models import FetchResponse, Method, RequestDescriptor, ResponseStatus
from rawfetch.domain.redirects import NOT_MODIFIED, RedirectController, is_redirect
from rawfetch.domain.timeout_monitor import TimeoutMonitor
from rawfetch.ports.cache_store import CacheStorePort
from rawfetch.ports.cookie_store import CookieStorePort

LOG = logging.getLogger("rawfetch.completion")

NO_RESPONSE = ResponseStatus.synthetic(500, "No response")


class CompletionDispatcher:
    """The one place where an attempt is declared finished."""

    def __init__(
        self,
        body_processor: BodyProcessor,
        redirects: RedirectController,
        *,
        cookie_store: CookieStorePort | None = None,
        cache_store: CacheStorePort | None = None,
    ) -> None:
        self.body_processor = body_processor
        self.redirects = redirects
        self.cookie_store = cookie_store
        self.cache_store = cache_store
        self._tasks: set[asyncio.Task[None]] = set()

    # --- teardown ---

    @staticmethod
    def teardown(desc: RequestDescriptor) -> None:
        TimeoutMonitor.cancel(desc)
        transport = desc.transport
        if transport is not None:
            desc.transport = None
            desc.session_info = transport.session_info()
            transport.close()

    # --- collaborators ---

    def _store_cookies(self, desc: RequestDescriptor) -> None:
        if self.cookie_store is None or not desc.cookies.reads:
            return
        for value in desc.response_headers.getall("set-cookie", []):
            try:
                self.cookie_store.store(value, desc.url)
            except Exception as e:
                LOG.warning("cookies.store_failed", extra={"extra": {"url": desc.url, "error": str(e)}})

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver_not_modified(self, desc: RequestDescriptor) -> None:
        assert self.cache_store is not None
        try:
            cached = await self.cache_store.load(desc.url)
        except Exception as e:
            LOG.warning("cache.load_failed", extra={"extra": {"url": desc.url, "error": str(e)}})
            cached = None
        if cached is not None:
            desc.buffer = bytearray(cached)
        self._deliver(desc, cached=cached is not None)

    async def _store_then_deliver(self, desc: RequestDescriptor) -> None:
        assert self.cache_store is not None
        body = bytes(desc.buffer or b"")
        last_modified = desc.header("last-modified") or formatdate(usegmt=True)
        try:
            await self.cache_store.store(desc.url, body, last_modified)
        except Exception as e:
            LOG.warning("cache.store_failed", extra={"extra": {"url": desc.url, "error": str(e)}})
        self._deliver(desc)

    # --- delivery ---

    def _deliver(self, desc: RequestDescriptor, *, cached: bool = False) -> None:
        assert desc.status is not None
        response: FetchResponse | None = None
        try:
            if desc.ignore_errors and not desc.status.ok and not cached:
                LOG.info(
                    "fetch.suppressed",
                    extra={"extra": {"url": desc.url, "code": desc.status.code}},
                )
                return
            response = FetchResponse(
                url=desc.url,
                status_line=desc.status,
                headers=CIMultiDictProxy(desc.response_headers),
                body=bytes(desc.buffer or b""),
                session_info=dict(desc.session_info),
            )
            if desc.continuation is not None:
                desc.continuation(response)
        except Exception as e:
            LOG.exception("fetch.callback_error", extra={"extra": {"url": desc.url}})
            if desc.done is not None and not desc.done.done():
                desc.done.set_exception(e)
        finally:
            desc.buffer = None
            if desc.done is not None and not desc.done.done():
                desc.done.set_result(response)

    def _abort(self, desc: RequestDescriptor, exc: Exception) -> None:
        desc.buffer = None
        if desc.done is not None and not desc.done.done():
            desc.done.set_exception(exc)

    def complete(self, desc: RequestDescriptor, override: ResponseStatus | None = None) -> None:
        if desc.finished:
            return
        desc.finished = True
        self.teardown(desc)
        try:
            self._settle(desc, override)
        except Exception as e:
            LOG.exception("fetch.complete_failed", extra={"extra": {"url": desc.url}})
            self._abort(desc, e)

    def _settle(self, desc: RequestDescriptor, override: ResponseStatus | None) -> None:
        if override is not None:
            desc.status = override
        elif desc.status is None:
            desc.status = NO_RESPONSE

        if desc.from_network:
            self._store_cookies(desc)
            if desc.header_end is not None:
                self.body_processor.process(desc)

        code = desc.status.code
        cacheable = desc.from_network and desc.status.ok and override is None
        if desc.verbose:
            LOG.info(
                "fetch.complete",
                extra={"extra": {"url": desc.url, "code": code, "reason": desc.status.reason}},
            )
            if desc.verbose >= 2:
                LOG.info(
                    "fetch.headers",
                    extra={"extra": {"url": desc.url, "headers": list(desc.response_headers.items())}},
                )

        if self.cache_store is not None:
            if code == NOT_MODIFIED and desc.cache.reads:
                self._spawn(self._deliver_not_modified(desc))
                return
            if cacheable and desc.cache.writes and desc.method == Method.GET:
                self._spawn(self._store_then_deliver(desc))
                return
        if is_redirect(code) and self.redirects.handle(desc):
            return
        self._deliver(desc)
