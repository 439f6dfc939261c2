# /rawfetch/adapters/http/asyncio_transport.py
from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Callable
from typing import Any

from rawfetch.config import settings
from rawfetch.domain.events import Connected, DataReceived, PeerClosed, TransportEvent, TransportFailed

LOG = logging.getLogger("adapter.transport")


def make_ssl_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class _EventProtocol(asyncio.Protocol):
    """Translates asyncio protocol callbacks into transport events."""

    def __init__(self, on_event: Callable[[TransportEvent], None]) -> None:
        self._on_event = on_event
        self.transport: asyncio.Transport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.Transport)
        self.transport = transport
        self._on_event(Connected())

    def data_received(self, data: bytes) -> None:
        self._on_event(DataReceived(data))

    def eof_received(self) -> bool | None:
        self._on_event(PeerClosed())
        return None

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is None:
            self._on_event(PeerClosed())
        else:
            self._on_event(TransportFailed(str(exc) or type(exc).__name__))


class AsyncioStreamHandle:
    def __init__(self, host: str, port: int, on_event: Callable[[TransportEvent], None]) -> None:
        self.host = host
        self.port = port
        self._on_event = on_event
        self._protocol = _EventProtocol(on_event)
        self._task: asyncio.Task[Any] | None = None
        self._closed = False

    def start(self, ssl_context: ssl.SSLContext | None) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._connect(loop, ssl_context))

    async def _connect(self, loop: asyncio.AbstractEventLoop, ssl_context: ssl.SSLContext | None) -> None:
        try:
            await loop.create_connection(
                lambda: self._protocol,
                self.host,
                self.port,
                ssl=ssl_context,
                server_hostname=self.host if ssl_context is not None else None,
            )
        except OSError as e:
            LOG.info(
                "transport.connect_failed",
                extra={"extra": {"host": self.host, "port": self.port, "error": str(e)}},
            )
            if not self._closed:
                self._on_event(TransportFailed(str(e) or type(e).__name__))

    def send(self, data: bytes) -> None:
        if self._closed or self._protocol.transport is None:
            return
        self._protocol.transport.write(data)

    def session_info(self) -> dict[str, Any]:
        transport = self._protocol.transport
        if transport is None:
            return {}
        info: dict[str, Any] = {"peername": transport.get_extra_info("peername")}
        ssl_object = transport.get_extra_info("ssl_object")
        if ssl_object is not None:
            info["tls_version"] = ssl_object.version()
            info["cipher"] = transport.get_extra_info("cipher")
            info["peer_cert"] = transport.get_extra_info("peercert")
        return info

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._protocol.transport is not None:
            self._protocol.transport.close()


class AsyncioTransport:
    """Non-blocking plain or TLS byte streams on the running event loop."""

    def __init__(self, verify_tls: bool | None = None) -> None:
        self.verify_tls = settings.VERIFY_TLS if verify_tls is None else verify_tls
        self._ssl_context: ssl.SSLContext | None = None

    def _context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = make_ssl_context(self.verify_tls)
        return self._ssl_context

    def open(
        self,
        host: str,
        port: int,
        *,
        secure: bool,
        on_event: Callable[[TransportEvent], None],
    ) -> AsyncioStreamHandle:
        handle = AsyncioStreamHandle(host, port, on_event)
        handle.start(self._context() if secure else None)
        return handle
