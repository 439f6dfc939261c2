# /rawfetch/domain/request_writer.py
from __future__ import annotations

import logging

from aiohttp import BasicAuth, hdrs

from rawfetch.domain.models import Method, RequestDescriptor
from rawfetch.ports.body_encoder import BodyEncoderPort
from rawfetch.ports.cookie_store import CookieStorePort
from rawfetch.ports.decompressor import DecompressorPort

LOG = logging.getLogger("rawfetch.request_writer")
WIRE_LOG = logging.getLogger("rawfetch.wire")

Header = tuple[str, str | None]


def merge_headers(builtins: list[Header], overrides: list[Header]) -> list[tuple[str, str]]:
    """
    Caller overrides win by (case-insensitive) name over built-ins, keeping the
    built-in's position. A None value, from either side, drops the header.
    Overrides with no built-in counterpart follow in caller order.
    """
    override_by_name: dict[str, str | None] = {}
    for name, value in overrides:
        override_by_name[name.lower()] = value

    out: list[tuple[str, str]] = []
    seen: set[str] = set()
    for name, value in builtins:
        key = name.lower()
        seen.add(key)
        if key in override_by_name:
            value = override_by_name[key]
        if value is not None:
            out.append((name, value))

    for name, value in overrides:
        if name.lower() in seen or value is None:
            continue
        out.append((name, value))
    return out


def serialize(method: str, target: str, headers: list[tuple[str, str]], body: bytes = b"") -> bytes:
    head = f"{method} {target} HTTP/1.1\r\n"
    head += "".join(f"{name}: {value}\r\n" for name, value in headers)
    head += "\r\n"
    return head.encode("latin-1") + body


class RequestWriter:
    def __init__(
        self,
        body_encoder: BodyEncoderPort,
        *,
        user_agent: str,
        cookie_store: CookieStorePort | None = None,
        decompressor: DecompressorPort | None = None,
    ) -> None:
        self.body_encoder = body_encoder
        self.user_agent = user_agent
        self.cookie_store = cookie_store
        self.decompressor = decompressor

    # --- built-in header values ---

    def _accept_encoding(self) -> str | None:
        if self.decompressor is None or not self.decompressor.encodings:
            return None
        return ", ".join(self.decompressor.encodings)

    def _cookie(self, desc: RequestDescriptor) -> str | None:
        if self.cookie_store is None or not desc.cookies.writes or desc.parsed is None:
            return None
        path = desc.parsed.path.split("?", 1)[0] or "/"
        pairs = self.cookie_store.retrieve(desc.parsed.host, path, desc.parsed.secure)
        if not pairs:
            return None
        return "; ".join(f"{name}={value}" for name, value in pairs)

    @staticmethod
    def _if_modified_since(desc: RequestDescriptor) -> str | None:
        return desc.cache_validator if desc.cache.reads else None

    @staticmethod
    def _authorization(desc: RequestDescriptor) -> str | None:
        parsed = desc.parsed
        if parsed is None or parsed.user is None:
            return None
        return BasicAuth(parsed.user, parsed.password or "").encode()

    # --- request pieces ---

    def target(self, desc: RequestDescriptor) -> str:
        assert desc.parsed is not None
        path = desc.parsed.path or "/"
        if desc.method == Method.GET and desc.body is not None:
            query = self.body_encoder.query_string(desc.body, desc.body_charset)
            if query:
                path += ("&" if "?" in path else "?") + query
        return path

    def builtin_headers(self, desc: RequestDescriptor) -> list[Header]:
        assert desc.parsed is not None
        body = desc.prepared_body if desc.method != Method.GET else None
        return [
            (hdrs.HOST, desc.parsed.host_header),
            (hdrs.USER_AGENT, self.user_agent),
            (hdrs.CONNECTION, "close"),
            (hdrs.ACCEPT_ENCODING, self._accept_encoding()),
            (hdrs.ACCEPT, "*/*"),
            (hdrs.AUTHORIZATION, self._authorization(desc)),
            (hdrs.COOKIE, self._cookie(desc)),
            (hdrs.IF_MODIFIED_SINCE, self._if_modified_since(desc)),
            (hdrs.CONTENT_TYPE, body.content_type if body else None),
            (hdrs.CONTENT_TRANSFER_ENCODING, body.transfer_encoding if body else None),
            (hdrs.CONTENT_LENGTH, str(len(body.content)) if body else None),
        ]

    def build(self, desc: RequestDescriptor) -> bytes:
        headers = merge_headers(self.builtin_headers(desc), desc.headers)
        body = desc.prepared_body.content if desc.prepared_body and desc.method != Method.GET else b""
        wire = serialize(str(desc.method), self.target(desc), headers, body)
        if desc.debug:
            if desc.debug_sink is not None:
                desc.debug_sink(wire)
            else:
                WIRE_LOG.debug(
                    "request.wire",
                    extra={"extra": {"url": desc.url, "bytes": wire.decode("latin-1")}},
                )
        if desc.verbose:
            LOG.info(
                "request.built",
                extra={"extra": {"url": desc.url, "method": str(desc.method), "size": len(wire)}},
            )
        return wire
