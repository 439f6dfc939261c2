# /rawfetch/domain/body_processor.py
from __future__ import annotations

import logging

from rawfetch.domain.framing import ChunkError, dechunk
from rawfetch.domain.models import Framing, RequestDescriptor
from rawfetch.ports.decompressor import DecompressorPort

LOG = logging.getLogger("rawfetch.body_processor")

_TEXTUAL_TYPES = (
    "application/json",
    "application/javascript",
    "application/xml",
    "application/x-www-form-urlencoded",
)


def is_textual(content_type: str | None) -> bool:
    """Missing content type counts as text."""
    if not content_type:
        return True
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.startswith("text/") or mime in _TEXTUAL_TYPES or mime.endswith(("+xml", "+json"))


class BodyProcessor:
    def __init__(self, decompressor: DecompressorPort | None = None) -> None:
        self.decompressor = decompressor

    def strip_headers(self, desc: RequestDescriptor) -> None:
        assert desc.buffer is not None
        if desc.header_end:
            del desc.buffer[: desc.header_end]
            desc.header_end = 0

    def _decompress(self, desc: RequestDescriptor, body: bytes) -> bytes:
        encoding = (desc.header("content-encoding") or "").strip().lower()
        if not encoding or encoding == "identity":
            return body
        if self.decompressor is None or encoding not in self.decompressor.encodings:
            return body
        try:
            return self.decompressor.decompress(encoding, body)
        except (OSError, EOFError, ValueError) as e:
            LOG.warning(
                "body.decompress_failed",
                extra={"extra": {"url": desc.url, "encoding": encoding, "error": str(e)}},
            )
            return body

    def process(self, desc: RequestDescriptor) -> None:
        """Cut to the frame, strip headers, then dechunk, decompress and normalize line endings in place."""
        assert desc.buffer is not None
        if desc.expected_size is not None:
            del desc.buffer[desc.expected_size :]
        self.strip_headers(desc)
        body = bytes(desc.buffer)
        if desc.framing is Framing.CHUNKED:
            try:
                body = dechunk(body)
            except ChunkError as e:
                LOG.warning("body.dechunk_failed", extra={"extra": {"url": desc.url, "error": str(e)}})
        body = self._decompress(desc, body)
        if is_textual(desc.header("content-type")):
            body = body.replace(b"\r\n", b"\n")
        desc.buffer = bytearray(body)
