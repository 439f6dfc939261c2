# tests/test_framing.py
from __future__ import annotations

import pytest

from rawfetch.domain import framing
from rawfetch.domain.models import Framing, Method, RequestDescriptor
from tests.fakes import chunked, http_response


def _feed(desc: RequestDescriptor, *fragments: bytes) -> list[bool]:
    return [framing.accumulate(desc, f, now=float(i)) for i, f in enumerate(fragments)]


def _split(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def test_content_length_completes_exactly_at_declared_size() -> None:
    wire = http_response(body=b"0123456789")
    desc = RequestDescriptor(original_url="http://x/")
    results = _feed(desc, *_split(wire, 7))
    assert results[-1] is True
    assert not any(results[:-1])
    assert desc.framing is Framing.LENGTH
    assert desc.expected_size == len(wire)
    assert desc.last_activity == float(len(results) - 1)


def test_header_terminator_tolerates_bare_lf() -> None:
    desc = RequestDescriptor(original_url="http://x/")
    assert _feed(desc, b"HTTP/1.1 200 OK\nContent-Length: 2\n\nhi") == [True]
    assert desc.header_end == len(b"HTTP/1.1 200 OK\nContent-Length: 2\n\n")


def test_content_length_search_is_bounded_to_header_block() -> None:
    body = b"Content-Length: 999\r\n"
    wire = http_response(headers=[("Content-Type", "text/plain")], body=body, content_length=False)
    desc = RequestDescriptor(original_url="http://x/")
    assert _feed(desc, wire) == [False]
    assert desc.framing is Framing.CLOSE
    assert desc.expected_size is None


def test_chunked_completes_on_zero_chunk_across_fragments() -> None:
    head = http_response(headers=[("Transfer-Encoding", "chunked")], content_length=False)
    wire = head + chunked(b"Wiki", b"pedia", b" in\r\n\r\nchunks.")
    desc = RequestDescriptor(original_url="http://x/")
    results = _feed(desc, *_split(wire, 5))
    assert results[-1] is True
    assert not any(results[:-1])
    assert desc.framing is Framing.CHUNKED
    assert desc.expected_size == len(wire)


def test_chunked_waits_for_partial_chunk() -> None:
    head = http_response(headers=[("Transfer-Encoding", "chunked")], content_length=False)
    desc = RequestDescriptor(original_url="http://x/")
    assert _feed(desc, head + b"a\r\n01234") == [False]
    assert desc.chunk_cursor == len(head)
    assert _feed(desc, b"56789\r\n") == [False]
    assert desc.chunk_cursor == len(head) + len(b"a\r\n0123456789\r\n")
    assert _feed(desc, b"0\r\n\r\n") == [True]


def test_bad_chunk_size_raises() -> None:
    head = http_response(headers=[("Transfer-Encoding", "chunked")], content_length=False)
    desc = RequestDescriptor(original_url="http://x/")
    with pytest.raises(framing.ChunkError):
        _feed(desc, head + b"zz\r\n")


def test_head_and_no_content_responses_end_at_header_block() -> None:
    desc = RequestDescriptor(original_url="http://x/", method=Method.HEAD)
    assert _feed(desc, b"HTTP/1.1 200 OK\r\nContent-Length: 500\r\n\r\n") == [True]
    assert desc.framing is Framing.EMPTY

    desc = RequestDescriptor(original_url="http://x/")
    assert _feed(desc, b"HTTP/1.1 304 Not Modified\r\nContent-Length: 500\r\n\r\n") == [True]


@pytest.mark.parametrize(
    "payloads",
    [
        [b"a"],
        [b"hello", b" ", b"world"],
        [b"x" * 300, b"y" * 17],
        [b"line\r\n", b"\r\n"],
    ],
)
def test_dechunk_reproduces_concatenated_payloads(payloads: list[bytes]) -> None:
    body = chunked(*payloads)
    cursor, done = framing.walk_chunks(body, 0)
    assert done is True
    assert framing.dechunk(body) == b"".join(payloads)
    assert framing.dechunk(body[:cursor]) == b"".join(payloads)


def test_dechunk_ignores_extensions_and_trailers() -> None:
    body = b"3;name=val\r\nabc\r\n0\r\nExpires: never\r\n\r\n"
    assert framing.dechunk(body) == b"abc"
