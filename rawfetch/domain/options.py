# /rawfetch/domain/options.py
from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rawfetch.config import settings
from rawfetch.domain.models import (
    Body,
    CacheMode,
    Continuation,
    CookieMode,
    DataEncoding,
    FieldsBody,
    Method,
    RawBody,
    RequestDescriptor,
)


def _positive(value: float | None) -> float | None:
    return value if value and value > 0 else None


class FetchOptions(BaseModel):
    """Per-request options; anything left out falls back to `settings`."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    timeout: float | None = Field(default_factory=lambda: settings.TIMEOUT_SECONDS)
    read_timeout: float | None = Field(default_factory=lambda: settings.READ_TIMEOUT_SECONDS)
    verbose: int = 0
    cookies: CookieMode = CookieMode.OFF
    cache: CacheMode = CacheMode.OFF
    follow_redirects: bool = True
    debug: bool = False
    debug_sink: Callable[[bytes], None] | None = None
    headers: list[tuple[str, str | None]] = Field(default_factory=list)
    ignore_errors: bool = False
    method: str = "GET"
    data: str | bytes | list[tuple[str, str]] | None = None
    data_charset: str = "utf-8"
    data_encoding: DataEncoding = DataEncoding.URL_ENCODED

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_from_mapping(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return list(value.items())
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _fields_from_mapping(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return [(str(k), str(v)) for k, v in value.items()]
        return value

    @field_validator("method")
    @classmethod
    def _method_token(cls, value: str) -> str:
        value = value.strip().upper()
        if not value or any(c.isspace() for c in value):
            raise ValueError("method must be a single token")
        return value

    def body(self) -> Body | None:
        if self.data is None:
            return None
        if isinstance(self.data, (str, bytes)):
            return RawBody(self.data)
        return FieldsBody(tuple(self.data))

    def build_descriptor(self, url: str, continuation: Continuation | None = None) -> RequestDescriptor:
        return RequestDescriptor(
            original_url=url,
            method=Method.coerce(self.method),
            headers=list(self.headers),
            body=self.body(),
            body_charset=self.data_charset,
            body_encoding=self.data_encoding,
            cookies=self.cookies,
            cache=self.cache,
            follow_redirects=self.follow_redirects,
            ignore_errors=self.ignore_errors,
            debug=self.debug,
            debug_sink=self.debug_sink,
            verbose=self.verbose,
            timeout=_positive(self.timeout),
            read_timeout=_positive(self.read_timeout),
            continuation=continuation,
        )
