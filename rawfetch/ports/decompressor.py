# /rawfetch/ports/decompressor.py
from __future__ import annotations

from typing import Protocol


class DecompressorPort(Protocol):
    encodings: tuple[str, ...]

    def decompress(self, encoding: str, data: bytes) -> bytes:
        """Decode data declared with Content-Encoding `encoding`."""
