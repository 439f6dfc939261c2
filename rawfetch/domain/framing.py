# /rawfetch/domain/framing.py
"""
Response accumulator and framing detector.

Inbound bytes are appended to the descriptor buffer. While the expected frame
size is unknown, the buffered prefix is searched for the end of the header
block; once found, Content-Length or chunked Transfer-Encoding decide how many
bytes make a complete frame. Without either, the frame ends when the peer
closes the stream.
"""
from __future__ import annotations

import re

from rawfetch.domain.models import Framing, Method, RequestDescriptor

HEADER_END = re.compile(rb"\r?\n\r?\n")
_CONTENT_LENGTH = re.compile(rb"^content-length[ \t]*:[ \t]*(\d+)[ \t]*\r?$", re.IGNORECASE | re.MULTILINE)
_CHUNKED = re.compile(rb"^transfer-encoding[ \t]*:[^\n]*\bchunked\b", re.IGNORECASE | re.MULTILINE)
_STATUS_CODE = re.compile(rb"^\S+[ \t]+(\d{3})")


class ChunkError(ValueError):
    pass


def find_header_end(buf: bytes | bytearray) -> int | None:
    """Offset of the first body byte, or None while the header block is incomplete."""
    match = HEADER_END.search(buf)
    return match.end() if match else None


def _bodyless(method: object, head: bytes) -> bool:
    if method == Method.HEAD:
        return True
    match = _STATUS_CODE.match(head)
    if not match:
        return False
    code = int(match.group(1))
    return 100 <= code < 200 or code in (204, 304)


def _chunk_size(line: bytes) -> int:
    size = line.split(b";", 1)[0].strip()
    try:
        return int(size, 16)
    except ValueError:
        raise ChunkError(f"bad chunk size line: {line[:40]!r}") from None


def walk_chunks(buf: bytes | bytearray, pos: int) -> tuple[int, bool]:
    """
    Step over every complete chunk starting at pos.

    Returns (cursor, done): cursor is where the next incomplete chunk starts,
    done is True once the zero-size chunk has been seen.
    """
    while True:
        eol = buf.find(b"\n", pos)
        if eol < 0:
            return pos, False
        size = _chunk_size(bytes(buf[pos:eol]))
        if size == 0:
            return eol + 1, True
        data_end = eol + 1 + size
        if buf[data_end : data_end + 2] == b"\r\n":
            pos = data_end + 2
        elif buf[data_end : data_end + 1] == b"\n":
            pos = data_end + 1
        else:
            return pos, False


def dechunk(body: bytes | bytearray) -> bytes:
    """Concatenate chunk payloads; stops at the zero-size chunk, trailers dropped."""
    out = bytearray()
    pos = 0
    while pos < len(body):
        eol = body.find(b"\n", pos)
        if eol < 0:
            break
        size = _chunk_size(bytes(body[pos:eol]))
        if size == 0:
            break
        start = eol + 1
        out += body[start : start + size]
        pos = start + size
        if body[pos : pos + 2] == b"\r\n":
            pos += 2
        elif body[pos : pos + 1] == b"\n":
            pos += 1
    return bytes(out)


def detect(desc: RequestDescriptor) -> None:
    """Fill in header_end/framing/expected_size from what has been buffered so far."""
    buf = desc.buffer
    assert buf is not None

    if desc.header_end is None:
        end = find_header_end(buf)
        if end is None:
            return
        desc.header_end = end
        head = bytes(buf[:end])
        if _bodyless(desc.method, head):
            desc.framing = Framing.EMPTY
            desc.expected_size = end
            return
        length = _CONTENT_LENGTH.search(head)
        if length:
            desc.framing = Framing.LENGTH
            desc.expected_size = end + int(length.group(1))
            return
        if _CHUNKED.search(head):
            desc.framing = Framing.CHUNKED
            desc.chunk_cursor = end
        else:
            desc.framing = Framing.CLOSE
            return

    if desc.framing is Framing.CHUNKED and desc.expected_size is None:
        assert desc.chunk_cursor is not None
        cursor, done = walk_chunks(buf, desc.chunk_cursor)
        desc.chunk_cursor = cursor
        if done:
            desc.expected_size = len(buf)


def accumulate(desc: RequestDescriptor, data: bytes, now: float) -> bool:
    """Append data; True once the buffered frame is complete."""
    assert desc.buffer is not None
    desc.buffer += data
    desc.last_activity = now
    if desc.expected_size is None:
        detect(desc)
    return desc.expected_size is not None and len(desc.buffer) >= desc.expected_size
