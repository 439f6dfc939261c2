# /rawfetch/adapters/codec/gzip_decompressor.py
from __future__ import annotations

import gzip
import zlib


class GzipDecompressor:
    encodings: tuple[str, ...] = ("gzip", "deflate")

    def decompress(self, encoding: str, data: bytes) -> bytes:
        try:
            if encoding == "gzip":
                return gzip.decompress(data)
            if encoding == "deflate":
                try:
                    return zlib.decompress(data)
                except zlib.error:
                    # raw deflate stream without the zlib wrapper
                    return zlib.decompress(data, -zlib.MAX_WBITS)
        except zlib.error as e:
            raise ValueError(str(e)) from e
        raise ValueError(f"unsupported content encoding: {encoding}")
