# /rawfetch/adapters/body/form_body_encoder.py
from __future__ import annotations

import base64
from urllib.parse import quote, urlencode

import aiohttp
from aiohttp import hdrs

from rawfetch.domain.models import Body, DataEncoding, EncodedBody, FieldsBody, RawBody

FORM_URLENCODED = "application/x-www-form-urlencoded"


class _BufferWriter:
    """Minimal async sink for aiohttp payload writers."""

    def __init__(self) -> None:
        self.buffer = bytearray()

    async def write(self, chunk: bytes) -> None:
        self.buffer += chunk


def _as_bytes(payload: str | bytes, charset: str) -> bytes:
    return payload.encode(charset) if isinstance(payload, str) else payload


class FormBodyEncoder:
    """
    url_encoded: fields joined and percent-escaped, raw payloads sent as given.
    multipart:   aiohttp MultipartWriter, one form-data part per field.
    base64:      the url-encoded bytes base64-encoded, still labelled
                 application/x-www-form-urlencoded, with
                 Content-Transfer-Encoding: base64.
    """

    def _urlencoded(self, body: Body, charset: str) -> bytes:
        if isinstance(body, RawBody):
            return _as_bytes(body.payload, charset)
        return urlencode(list(body.fields), encoding=charset).encode("ascii")

    async def _multipart(self, body: Body, charset: str) -> EncodedBody:
        fields = body.fields if isinstance(body, FieldsBody) else (("data", body.payload),)
        writer = aiohttp.MultipartWriter("form-data")
        for name, value in fields:
            part = writer.append(
                _as_bytes(value, charset),
                {hdrs.CONTENT_TYPE: f"text/plain; charset={charset}"},
            )
            part.set_content_disposition("form-data", name=name)
        sink = _BufferWriter()
        await writer.write(sink)
        return EncodedBody(content=bytes(sink.buffer), content_type=writer.headers[hdrs.CONTENT_TYPE])

    async def encode(self, body: Body, encoding: DataEncoding, charset: str) -> EncodedBody:
        if encoding is DataEncoding.MULTIPART:
            return await self._multipart(body, charset)
        content_type = f"{FORM_URLENCODED}; charset={charset}"
        content = self._urlencoded(body, charset)
        if encoding is DataEncoding.BASE64:
            return EncodedBody(
                content=base64.b64encode(content),
                content_type=content_type,
                transfer_encoding="base64",
            )
        return EncodedBody(content=content, content_type=content_type)

    def query_string(self, body: Body, charset: str) -> str:
        if isinstance(body, RawBody):
            payload = body.payload if isinstance(body.payload, str) else body.payload.decode(charset)
            return quote(payload, safe="=&+", encoding=charset)
        return urlencode(list(body.fields), encoding=charset)
