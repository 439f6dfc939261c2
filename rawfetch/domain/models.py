# /rawfetch/domain/models.py
from __future__ import annotations

import asyncio
import enum
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from multidict import CIMultiDict, CIMultiDictProxy

from rawfetch.ports.transport import TransportHandle

# ==== Enumerations ====


class Method(enum.StrEnum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"

    @classmethod
    def coerce(cls, value: str) -> Method | str:
        """Known verbs map to members; anything else stays a bare upper-case token."""
        name = value.strip().upper()
        try:
            return cls(name)
        except ValueError:
            return name


class _Mode(enum.StrEnum):
    @property
    def reads(self) -> bool:
        return self in ("read", "both")

    @property
    def writes(self) -> bool:
        return self in ("write", "both")


class CookieMode(_Mode):
    """read = store Set-Cookie from responses, write = send a Cookie header."""

    OFF = "off"
    READ = "read"
    WRITE = "write"
    BOTH = "both"


class CacheMode(_Mode):
    """read = send If-Modified-Since and reuse on 304, write = store 2xx bodies."""

    OFF = "off"
    READ = "read"
    WRITE = "write"
    BOTH = "both"


class DataEncoding(enum.StrEnum):
    URL_ENCODED = "url_encoded"
    MULTIPART = "multipart"
    BASE64 = "base64"


class Framing(enum.Enum):
    UNKNOWN = "unknown"
    LENGTH = "length"
    CHUNKED = "chunked"
    CLOSE = "close"
    EMPTY = "empty"


# ==== Request body variants ====


@dataclass(frozen=True, slots=True)
class RawBody:
    payload: str | bytes


@dataclass(frozen=True, slots=True)
class FieldsBody:
    fields: tuple[tuple[str, str], ...]


Body = RawBody | FieldsBody


@dataclass(frozen=True, slots=True)
class EncodedBody:
    content: bytes
    content_type: str
    transfer_encoding: str | None = None


# ==== URL / status / response ====


@dataclass(frozen=True, slots=True)
class ParsedURL:
    scheme: str
    host: str  # IDNA-encoded
    port: int | None
    path: str  # path + query, raw
    user: str | None = None
    password: str | None = None

    @property
    def secure(self) -> bool:
        return self.scheme == "https"

    @property
    def host_header(self) -> str:
        default = 443 if self.secure else 80
        if self.port is None or self.port == default:
            return self.host
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class ResponseStatus:
    code: int
    reason: str
    line: str

    @classmethod
    def synthetic(cls, code: int, reason: str) -> ResponseStatus:
        return cls(code=code, reason=reason, line=f"HTTP/1.1 {code} {reason}")

    @property
    def ok(self) -> bool:
        return 200 <= self.code <= 299


_CHARSET = re.compile(r"charset=\"?([\w.:-]+)", re.IGNORECASE)


@dataclass(slots=True)
class FetchResponse:
    """What the continuation receives: final status, headers and body of one fetch."""

    url: str
    status_line: ResponseStatus
    headers: CIMultiDictProxy[str]
    body: bytes
    session_info: dict[str, Any] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        values = self.headers.getall(name, [])
        return values[-1] if values else None

    def status(self, name: str = "code") -> Any:
        if name == "code":
            return self.status_line.code
        if name == "reason":
            return self.status_line.reason
        if name == "line":
            return self.status_line.line
        return self.session_info.get(name)

    def ok(self) -> bool:
        return self.status_line.ok

    def error(self) -> bool:
        return not self.ok()

    def text(self, default_charset: str = "utf-8") -> str:
        match = _CHARSET.search(self.header("content-type") or "")
        charset = match.group(1) if match else default_charset
        try:
            return self.body.decode(charset, errors="replace")
        except LookupError:
            return self.body.decode(default_charset, errors="replace")


Continuation = Callable[[FetchResponse], Any]


# ==== Request descriptor ====


@dataclass(slots=True)
class RequestDescriptor:
    """One logical fetch. Mutated in place across redirect hops."""

    # identity
    original_url: str
    current_url: str | None = None
    parsed: ParsedURL | None = None

    # request shape
    method: Method | str = Method.GET
    headers: list[tuple[str, str | None]] = field(default_factory=list)
    body: Body | None = None
    body_charset: str = "utf-8"
    body_encoding: DataEncoding = DataEncoding.URL_ENCODED

    # policy
    cookies: CookieMode = CookieMode.OFF
    cache: CacheMode = CacheMode.OFF
    follow_redirects: bool = True
    ignore_errors: bool = False
    debug: bool = False
    debug_sink: Callable[[bytes], None] | None = None
    verbose: int = 0
    timeout: float | None = None
    read_timeout: float | None = None

    # lifecycle (one connection attempt)
    attempt: int = 0
    transport: TransportHandle | None = None
    buffer: bytearray | None = field(default_factory=bytearray)
    expected_size: int | None = None
    header_end: int | None = None
    framing: Framing = Framing.UNKNOWN
    chunk_cursor: int | None = None
    redirects: int = 0
    finished: bool = False
    start_time: float | None = None
    last_activity: float | None = None
    timer: asyncio.TimerHandle | None = None
    continuation: Continuation | None = None
    prepared_body: EncodedBody | None = None
    cache_validator: str | None = None
    from_network: bool = False

    # result (replaced wholesale per hop)
    status: ResponseStatus | None = None
    status_override: ResponseStatus | None = None
    response_headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    session_info: dict[str, Any] = field(default_factory=dict)

    # resolved once the final continuation ran (or was suppressed)
    done: asyncio.Future[FetchResponse | None] | None = None

    @property
    def url(self) -> str:
        return self.current_url or self.original_url

    def header(self, name: str) -> str | None:
        values = self.response_headers.getall(name, [])
        return values[-1] if values else None

    def reset_attempt(self) -> None:
        """Forget everything tied to the previous connection attempt."""
        self.attempt += 1
        self.transport = None
        self.buffer = bytearray()
        self.expected_size = None
        self.header_end = None
        self.framing = Framing.UNKNOWN
        self.chunk_cursor = None
        self.finished = False
        self.timer = None
        self.status = None
        self.status_override = None
        self.response_headers = CIMultiDict()
        self.session_info = {}
        self.cache_validator = None
        self.from_network = False
