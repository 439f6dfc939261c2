# tests/test_fetch_engine.py
from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from rawfetch.adapters.cache.memory_cache_store import MemoryCacheStore
from rawfetch.client import Fetcher, fetch_sync
from rawfetch.config import Settings
from rawfetch.domain.models import FetchResponse, RequestDescriptor
from tests.fakes import (
    FakeCacheStore,
    FakeCookieStore,
    Script,
    ScriptedTransport,
    chunked,
    http_response,
    redirect,
)

LAST_MODIFIED = "Wed, 21 Oct 2015 07:28:00 GMT"


def make_fetcher(transport: ScriptedTransport, **kw) -> Fetcher:
    return Fetcher(transport=transport, config=Settings(TIMER_TICK_SECONDS=0.02), **kw)


def _split(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


# ==== framing through the engine ====


@pytest.mark.asyncio
async def test_content_length_response_is_delivered_without_headers() -> None:
    wire = http_response(headers=[("Content-Type", "text/plain")], body=b"hello world")
    t = ScriptedTransport({"/": Script(_split(wire, 4), close=False)})
    resp = await make_fetcher(t).fetch("http://example.test/")
    assert isinstance(resp, FetchResponse)
    assert resp.status() == 200
    assert resp.status("reason") == "OK"
    assert resp.status("line") == "HTTP/1.1 200 OK"
    assert resp.body == b"hello world"
    assert resp.header("CONTENT-TYPE") == "text/plain"
    assert resp.ok() and not resp.error()
    assert t.handles[0].close_calls == 1
    assert resp.status("peername") == ("example.test", 80)


@pytest.mark.asyncio
async def test_chunked_response_completes_before_close() -> None:
    head = http_response(headers=[("Transfer-Encoding", "chunked")], content_length=False)
    wire = head + chunked(b"Wiki", b"pedia")
    t = ScriptedTransport({"/": Script(_split(wire, 3), close=False)})
    resp = await make_fetcher(t).fetch("http://example.test/")
    assert resp.body == b"Wikipedia"
    assert resp.ok()


@pytest.mark.asyncio
async def test_close_delimited_body() -> None:
    t = ScriptedTransport({"/": Script([http_response(body=b"streamed", content_length=False)])})
    resp = await make_fetcher(t).fetch("http://example.test/")
    assert resp.body == b"streamed"
    assert resp.ok()


@pytest.mark.asyncio
async def test_peer_closing_early_is_an_error() -> None:
    t = ScriptedTransport(
        {
            "/empty": Script([]),
            "/partial": Script([b"HTTP/1.1 200 OK\r\nContent-"]),
        }
    )
    f = make_fetcher(t)
    empty = await f.fetch("http://example.test/empty")
    partial = await f.fetch("http://example.test/partial")
    assert (empty.status(), empty.status("reason")) == (500, "Connection closed by peer")
    assert (partial.status(), partial.status("reason")) == (500, "Incomplete response")


@pytest.mark.asyncio
async def test_transport_failure_surfaces_as_500() -> None:
    t = ScriptedTransport(fail_hosts={"down.test": "Connection refused"})
    resp = await make_fetcher(t).fetch("http://down.test/")
    assert (resp.status(), resp.status("reason")) == (500, "Connection refused")
    assert resp.error()


@pytest.mark.asyncio
async def test_unsupported_scheme() -> None:
    t = ScriptedTransport()
    resp = await make_fetcher(t).fetch("ftp://example.test/file")
    assert (resp.status(), resp.status("reason")) == (500, "Unsupported URL")
    assert t.handles == []


@pytest.mark.asyncio
async def test_bytes_past_content_length_are_dropped() -> None:
    wire = b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nHelloEXTRA"
    t = ScriptedTransport({"/": Script([wire], close=False)})
    resp = await make_fetcher(t).fetch("http://example.test/")
    assert resp.body == b"Hello"


# ==== redirects ====


def _chain(hops: int) -> dict[str, Script]:
    routes = {f"/r{i}": redirect(f"/r{i + 1}") for i in range(hops)}
    routes[f"/r{hops}"] = Script([http_response(body=b"done")])
    return routes


@pytest.mark.asyncio
async def test_ten_redirects_are_followed() -> None:
    t = ScriptedTransport(_chain(10))
    resp = await make_fetcher(t).fetch("http://example.test/r0")
    assert resp.ok()
    assert resp.body == b"done"
    assert resp.url == "http://example.test/r10"
    assert len(t.handles) == 11
    assert all(h.close_calls == 1 for h in t.handles)


@pytest.mark.asyncio
async def test_eleventh_redirect_fails() -> None:
    t = ScriptedTransport(_chain(11))
    resp = await make_fetcher(t).fetch("http://example.test/r0")
    assert (resp.status(), resp.status("reason")) == (500, "Too many redirections")
    assert len(t.handles) == 11


@pytest.mark.asyncio
async def test_redirect_not_followed_is_success_shaped() -> None:
    moved = http_response(302, "Found", [("Location", "/next")], body=b"moved")
    t = ScriptedTransport({"/": Script([moved])})
    resp = await make_fetcher(t).fetch("http://example.test/", follow_redirects=False)
    assert (resp.status(), resp.status("reason")) == (200, "Redirect not followed")
    assert resp.ok()
    assert resp.body == b""
    assert resp.header("location") == "/next"
    assert len(t.handles) == 1


@pytest.mark.asyncio
async def test_use_proxy_is_rejected() -> None:
    t = ScriptedTransport({"/": redirect("http://proxy.test:3128/", 305, "Use Proxy")})
    resp = await make_fetcher(t).fetch("http://example.test/")
    assert (resp.status(), resp.status("reason")) == (500, "Redirection through proxy server not supported")
    assert len(t.handles) == 1


@pytest.mark.asyncio
async def test_see_other_switches_to_get_on_new_host() -> None:
    t = ScriptedTransport(
        {
            "/form": redirect("http://other.test/done", 303, "See Other"),
            "/done": Script([http_response(body=b"thanks")]),
        }
    )
    resp = await make_fetcher(t).fetch("http://example.test/form", method="POST", data={"a": "1"})
    assert resp.body == b"thanks"
    first, second = t.requests
    assert first.startswith(b"POST /form HTTP/1.1\r\n")
    assert first.endswith(b"\r\n\r\na=1")
    assert second.startswith(b"GET /done HTTP/1.1\r\n")
    assert b"Content-Length" not in second
    assert t.handles[1].host == "other.test"


@pytest.mark.asyncio
async def test_unparsable_location_ends_the_fetch() -> None:
    t = ScriptedTransport({"/": redirect("http://[bad")})
    fetching = make_fetcher(t).fetch("http://example.test/", timeout=1, read_timeout=1)
    resp = await asyncio.wait_for(fetching, 3)
    assert (resp.status(), resp.status("reason")) == (500, "Invalid redirect location")
    assert len(t.handles) == 1


@pytest.mark.asyncio
async def test_redirect_without_location_is_not_followed_when_disabled() -> None:
    t = ScriptedTransport({"/": Script([http_response(302, "Found", body=b"moved")])})
    resp = await make_fetcher(t).fetch("http://example.test/", follow_redirects=False, ignore_errors=True)
    assert resp is not None
    assert (resp.status(), resp.status("reason")) == (200, "Redirect not followed")
    assert resp.body == b""


# ==== timeouts ====


@pytest.mark.asyncio
async def test_idle_timeout_after_partial_response() -> None:
    partial = b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nabc"
    t = ScriptedTransport({"/": Script([partial], close=False)})
    f = make_fetcher(t)
    desc = f.start("http://example.test/", read_timeout=0.1, timeout=5)
    resp = await desc.done
    assert (resp.status(), resp.status("reason")) == (500, "Timer expired")
    assert desc.timer is None
    assert desc.transport is None
    assert desc.buffer is None
    await asyncio.sleep(0.1)
    assert t.handles[0].close_calls == 1


@pytest.mark.asyncio
async def test_overall_timeout_without_any_bytes() -> None:
    t = ScriptedTransport({"/": Script([], close=False)})
    resp = await make_fetcher(t).fetch("http://example.test/", timeout=0.1, read_timeout=0)
    assert (resp.status(), resp.status("reason")) == (500, "Timer expired")
    assert t.handles[0].close_calls == 1


# ==== continuation / ignore_errors ====


@pytest.mark.asyncio
async def test_fire_and_continue_returns_before_callback() -> None:
    t = ScriptedTransport({"/": Script([http_response(body=b"later")])})
    got: list[FetchResponse] = []
    desc = await make_fetcher(t).fetch("http://example.test/", callback=got.append)
    assert isinstance(desc, RequestDescriptor)
    assert got == []
    resp = await desc.done
    assert got == [resp]
    assert resp.body == b"later"


@pytest.mark.asyncio
async def test_ignore_errors_suppresses_continuation() -> None:
    t = ScriptedTransport({"/": Script([http_response(404, "Not Found", body=b"missing")])})
    got: list[FetchResponse] = []
    f = make_fetcher(t)
    assert await f.fetch("http://example.test/", ignore_errors=True) is None
    desc = await f.fetch("http://example.test/", callback=got.append, ignore_errors=True)
    assert await desc.done is None
    assert got == []
    assert desc.buffer is None


@pytest.mark.asyncio
async def test_callback_exception_reaches_waiter() -> None:
    t = ScriptedTransport({"/": Script([http_response()])})

    def boom(resp: FetchResponse) -> None:
        raise RuntimeError("callback failed")

    desc = await make_fetcher(t).fetch("http://example.test/", callback=boom)
    with pytest.raises(RuntimeError, match="callback failed"):
        await desc.done


@pytest.mark.asyncio
async def test_invalid_option_raises() -> None:
    with pytest.raises(ValidationError):
        await make_fetcher(ScriptedTransport()).fetch("http://example.test/", cookies="sometimes")


# ==== cookies / cache ====


@pytest.mark.asyncio
async def test_cookies_are_stored_and_sent() -> None:
    t = ScriptedTransport(
        {
            "/login": Script([http_response(headers=[("Set-Cookie", "sid=abc; Path=/")])]),
            "/home": Script([http_response(body=b"hi")]),
        }
    )
    f = make_fetcher(t)
    await f.fetch("http://example.test/login", cookies="both")
    await f.fetch("http://example.test/home", cookies="both")
    await f.fetch("http://example.test/home")
    assert b"Cookie:" not in t.requests[0]
    assert b"\r\nCookie: sid=abc\r\n" in t.requests[1]
    assert b"Cookie:" not in t.requests[2]


@pytest.mark.asyncio
async def test_not_modified_substitutes_cached_body() -> None:
    cache = MemoryCacheStore()
    t = ScriptedTransport(
        {
            "/page": [
                Script([http_response(headers=[("Last-Modified", LAST_MODIFIED)], body=b"cached body")]),
                Script([http_response(304, "Not Modified", content_length=False)]),
            ]
        }
    )
    f = make_fetcher(t, cache_store=cache)
    first = await f.fetch("http://example.test/page", cache="both")
    assert first.body == b"cached body"
    assert await cache.lookup("http://example.test/page") == LAST_MODIFIED

    second = await f.fetch("http://example.test/page", cache="both", ignore_errors=True)
    assert f"If-Modified-Since: {LAST_MODIFIED}".encode() in t.requests[1]
    assert second.status() == 304
    assert second.body == b"cached body"


@pytest.mark.asyncio
async def test_only_successful_gets_are_cached() -> None:
    cache = MemoryCacheStore()
    t = ScriptedTransport({"/a": Script([http_response(500, "Oops", body=b"x")]), "/b": Script([http_response(body=b"y")])})
    f = make_fetcher(t, cache_store=cache)
    await f.fetch("http://example.test/a", cache="write")
    await f.fetch("http://example.test/b", cache="write", method="POST", data="z")
    assert await cache.load("http://example.test/a") is None
    assert await cache.load("http://example.test/b") is None


@pytest.mark.asyncio
async def test_failing_cache_store_still_delivers() -> None:
    cache = FakeCacheStore(error=ConnectionError("redis down"))
    t = ScriptedTransport({"/": Script([http_response(body=b"fresh")])})
    f = make_fetcher(t, cache_store=cache)
    written = await asyncio.wait_for(f.fetch("http://example.test/", cache="write"), 3)
    assert written.body == b"fresh"
    read = await asyncio.wait_for(f.fetch("http://example.test/", cache="both"), 3)
    assert read.ok()
    assert b"If-Modified-Since" not in t.requests[1]


@pytest.mark.asyncio
async def test_not_modified_with_failing_cache_is_delivered_as_is() -> None:
    cache = FakeCacheStore(last_modified=LAST_MODIFIED)
    t = ScriptedTransport({"/": Script([http_response(304, "Not Modified", content_length=False)])})
    f = make_fetcher(t, cache_store=cache)
    cache.error = ConnectionError("redis down")
    resp = await asyncio.wait_for(f.fetch("http://example.test/", cache="read"), 3)
    assert resp.status() == 304
    assert resp.body == b""


@pytest.mark.asyncio
async def test_failing_cookie_store_still_delivers() -> None:
    cookies = FakeCookieStore(error=RuntimeError("jar broken"))
    t = ScriptedTransport({"/": Script([http_response(headers=[("Set-Cookie", "sid=abc")], body=b"ok")])})
    f = make_fetcher(t, cookie_store=cookies)
    resp = await asyncio.wait_for(f.fetch("http://example.test/", cookies="both"), 3)
    assert resp.body == b"ok"


@pytest.mark.asyncio
async def test_default_fetcher_keeps_an_in_memory_cache() -> None:
    t = ScriptedTransport({"/page": Script([http_response(headers=[("Last-Modified", LAST_MODIFIED)], body=b"x")])})
    f = make_fetcher(t)
    await f.fetch("http://example.test/page", cache="both")
    await f.fetch("http://example.test/page", cache="both")
    assert f"If-Modified-Since: {LAST_MODIFIED}".encode() in t.requests[1]


# ==== local sources ====


@pytest.mark.asyncio
async def test_data_urls() -> None:
    f = make_fetcher(ScriptedTransport())
    ok = await f.fetch("data:text/plain;base64,SGVsbG8=")
    assert ok.body == b"Hello"
    assert ok.header("content-type") == "text/plain"
    assert (ok.status(), ok.status("reason")) == (200, "OK")

    bad = await f.fetch("data:,%zz")
    assert (bad.status(), bad.status("reason")) == (500, "Invalid data")


@pytest.mark.asyncio
async def test_file_urls(tmp_path) -> None:
    path = tmp_path / "note.txt"
    path.write_bytes(b"local\r\ncontent")
    f = make_fetcher(ScriptedTransport())
    resp = await f.fetch(f"file://{path}")
    assert resp.ok()
    assert resp.body == b"local\r\ncontent"
    assert resp.header("content-type") == "text/plain"

    missing = await f.fetch(f"file://{tmp_path / 'nope.txt'}")
    assert missing.status() == 500
    assert "No such file" in missing.status("reason")


def test_fetch_sync_blocks_until_finished() -> None:
    resp = fetch_sync("data:,hello%20world")
    assert resp is not None
    assert resp.text() == "hello world"
    assert resp.ok()
