# /rawfetch/ports/body_encoder.py
from __future__ import annotations

from typing import Protocol

from rawfetch.domain.models import Body, DataEncoding, EncodedBody


class BodyEncoderPort(Protocol):
    async def encode(self, body: Body, encoding: DataEncoding, charset: str) -> EncodedBody:
        """Serialize a request payload; content type and transfer encoding included."""

    def query_string(self, body: Body, charset: str) -> str:
        """Url-encode a payload for appending to a GET request path."""
