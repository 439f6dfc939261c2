# /rawfetch/domain/dispatcher.py
from __future__ import annotations

import asyncio
import logging
from functools import partial

from rawfetch.domain import framing, local_sources
from rawfetch.domain.body_processor import BodyProcessor
from rawfetch.domain.completion import CompletionDispatcher
from rawfetch.domain.events import Connected, DataReceived, PeerClosed, TransportEvent, TransportFailed
from rawfetch.domain.header_parser import parse_head
from rawfetch.domain.models import Method, RequestDescriptor, ResponseStatus
from rawfetch.domain.redirects import RedirectController
from rawfetch.domain.request_writer import RequestWriter
from rawfetch.domain.timeout_monitor import TimeoutMonitor
from rawfetch.ports.body_encoder import BodyEncoderPort
from rawfetch.ports.cache_store import CacheStorePort
from rawfetch.ports.cookie_store import CookieStorePort
from rawfetch.ports.decompressor import DecompressorPort
from rawfetch.ports.transport import TransportPort
from rawfetch.ports.url_parser import URLParserPort

LOG = logging.getLogger("rawfetch.dispatcher")

UNSUPPORTED_URL = ResponseStatus.synthetic(500, "Unsupported URL")
TIMER_EXPIRED = ResponseStatus.synthetic(500, "Timer expired")
CLOSED_EARLY = ResponseStatus.synthetic(500, "Connection closed by peer")
INCOMPLETE = ResponseStatus.synthetic(500, "Incomplete response")
BAD_CHUNKING = ResponseStatus.synthetic(500, "Invalid chunked encoding")

DEFAULT_PORTS = {"http": 80, "https": 443}


class FetchEngine:
    """
    Drives one descriptor through dispatch, transport events and completion.
    All entry points run on the event loop; nothing here blocks.
    """

    def __init__(
        self,
        url_parser: URLParserPort,
        transport: TransportPort,
        body_encoder: BodyEncoderPort,
        *,
        cookie_store: CookieStorePort | None = None,
        cache_store: CacheStorePort | None = None,
        decompressor: DecompressorPort | None = None,
        user_agent: str,
        max_redirects: int = 10,
        tick: float = 0.25,
    ) -> None:
        self.url_parser = url_parser
        self.transport = transport
        self.body_encoder = body_encoder
        self.cache_store = cache_store
        self.writer = RequestWriter(
            body_encoder,
            user_agent=user_agent,
            cookie_store=cookie_store,
            decompressor=decompressor,
        )
        self.redirects = RedirectController(url_parser, self.dispatch, max_redirects=max_redirects)
        self.completion = CompletionDispatcher(
            BodyProcessor(decompressor),
            self.redirects,
            cookie_store=cookie_store,
            cache_store=cache_store,
        )
        self.timeouts = TimeoutMonitor(self._expire, tick)
        self._tasks: set[asyncio.Task[None]] = set()

    # --- routing ---

    def dispatch(self, desc: RequestDescriptor) -> None:
        url = desc.url
        scheme = url.partition(":")[0].lower() if ":" in url else ""
        if desc.verbose:
            LOG.info(
                "fetch.dispatch",
                extra={"extra": {"url": url, "method": str(desc.method), "hop": desc.redirects}},
            )

        loop = asyncio.get_running_loop()
        if scheme == "data":
            loop.call_soon(self._complete_local, desc, local_sources.decode_data_url(url))
            return

        if scheme in ("http", "https", "file"):
            try:
                desc.parsed = self.url_parser.parse(url)
            except ValueError as e:
                LOG.warning("fetch.bad_url", extra={"extra": {"url": url, "error": str(e)}})
                desc.parsed = None

        if desc.parsed is None or (scheme != "file" and not desc.parsed.host):
            loop.call_soon(self.completion.complete, desc, UNSUPPORTED_URL)
            return

        if scheme == "file":
            loop.call_soon(self._complete_local, desc, local_sources.read_file(desc.parsed.path))
            return

        task = loop.create_task(self._attempt(desc))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _complete_local(self, desc: RequestDescriptor, result: local_sources.LocalResult) -> None:
        status, headers, body = result
        desc.response_headers = headers
        desc.buffer = bytearray(body)
        if status.ok:
            desc.status = status
            self.completion.complete(desc)
        else:
            self.completion.complete(desc, status)

    # --- network attempt ---

    async def _attempt(self, desc: RequestDescriptor) -> None:
        assert desc.parsed is not None
        parsed = desc.parsed
        self.timeouts.start(desc)
        desc.from_network = True

        if desc.body is not None and desc.method != Method.GET and desc.prepared_body is None:
            try:
                desc.prepared_body = await self.body_encoder.encode(
                    desc.body, desc.body_encoding, desc.body_charset
                )
            except (TypeError, ValueError) as e:
                LOG.warning("fetch.bad_body", extra={"extra": {"url": desc.url, "error": str(e)}})
                self.completion.complete(desc, ResponseStatus.synthetic(500, f"Invalid request body: {e}"))
                return

        if self.cache_store is not None and desc.cache.reads:
            try:
                desc.cache_validator = await self.cache_store.lookup(desc.url)
            except Exception as e:
                LOG.warning("cache.lookup_failed", extra={"extra": {"url": desc.url, "error": str(e)}})

        if desc.finished:
            return
        port = parsed.port or DEFAULT_PORTS[parsed.scheme]
        desc.transport = self.transport.open(
            parsed.host,
            port,
            secure=parsed.secure,
            on_event=partial(self.handle_event, desc, desc.attempt),
        )

    def _expire(self, desc: RequestDescriptor) -> None:
        self.completion.complete(desc, TIMER_EXPIRED)

    # --- transport events ---

    def handle_event(self, desc: RequestDescriptor, attempt: int, event: TransportEvent) -> None:
        if desc.finished or desc.attempt != attempt:
            return
        match event:
            case Connected():
                self._on_connected(desc)
            case DataReceived(data=data):
                self._on_data(desc, data)
            case PeerClosed():
                self._on_closed(desc)
            case TransportFailed(reason=reason):
                LOG.warning("transport.failed", extra={"extra": {"url": desc.url, "reason": reason}})
                self.completion.complete(desc, ResponseStatus.synthetic(500, reason))

    def _on_connected(self, desc: RequestDescriptor) -> None:
        try:
            wire = self.writer.build(desc)
        except ValueError as e:
            LOG.warning("fetch.bad_request", extra={"extra": {"url": desc.url, "error": str(e)}})
            self.completion.complete(desc, ResponseStatus.synthetic(500, f"Invalid request: {e}"))
            return
        assert desc.transport is not None
        desc.transport.send(wire)

    def _on_data(self, desc: RequestDescriptor, data: bytes) -> None:
        had_head = desc.header_end is not None
        now = asyncio.get_running_loop().time()
        try:
            complete = framing.accumulate(desc, data, now)
        except framing.ChunkError as e:
            LOG.warning("fetch.bad_chunk", extra={"extra": {"url": desc.url, "error": str(e)}})
            self.completion.complete(desc, BAD_CHUNKING)
            return
        if not had_head and desc.header_end is not None:
            assert desc.buffer is not None
            desc.status, desc.response_headers = parse_head(bytes(desc.buffer[: desc.header_end]))
        if complete:
            self.completion.complete(desc)

    def _on_closed(self, desc: RequestDescriptor) -> None:
        if not desc.buffer:
            self.completion.complete(desc, CLOSED_EARLY)
        elif desc.header_end is None:
            self.completion.complete(desc, INCOMPLETE)
        else:
            self.completion.complete(desc)
