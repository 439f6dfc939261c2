# /rawfetch/adapters/cli/main.py
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rawfetch.adapters.cache.redis_cache_store import RedisCacheStore
from rawfetch.adapters.system.logging_cfg import configure_logger
from rawfetch.client import Fetcher
from rawfetch.config import settings
from rawfetch.domain.models import FetchResponse

LOG = logging.getLogger("adapter.cli")


def _header(value: str) -> tuple[str, str | None]:
    name, sep, rest = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value' or 'Name:', got {value!r}")
    rest = rest.strip()
    # "Name:" with nothing after it suppresses a built-in header
    return name.strip(), rest or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rawfetch", description="Fetch a URL over raw HTTP/1.1")
    parser.add_argument("url")
    parser.add_argument("-X", "--method", default="GET")
    parser.add_argument("-H", "--header", dest="headers", action="append", type=_header, default=[])
    parser.add_argument("-d", "--data", default=None, help="request body")
    parser.add_argument(
        "--data-encoding", choices=["url_encoded", "multipart", "base64"], default="url_encoded"
    )
    parser.add_argument("--no-follow", dest="follow_redirects", action="store_false")
    parser.add_argument("--timeout", type=float, default=settings.TIMEOUT_SECONDS)
    parser.add_argument("--read-timeout", type=float, default=settings.READ_TIMEOUT_SECONDS)
    parser.add_argument("--cookies", choices=["off", "read", "write", "both"], default="off")
    parser.add_argument("--cache", choices=["off", "read", "write", "both"], default="off")
    parser.add_argument("-i", "--include", action="store_true", help="print status line and headers")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("--debug", action="store_true", help="log the exact request bytes")
    return parser


def _print(resp: FetchResponse, include: bool) -> None:
    out = sys.stdout.buffer
    if include:
        out.write(f"{resp.status('line')}\n".encode("latin-1", "replace"))
        for name, value in resp.headers.items():
            out.write(f"{name}: {value}\n".encode("latin-1", "replace"))
        out.write(b"\n")
    out.write(resp.body)
    out.flush()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.debug else (logging.INFO if args.verbose else settings.LOG_LEVEL)
    configure_logger(level)

    cache_store = RedisCacheStore(settings.REDIS_URL) if settings.REDIS_URL and args.cache != "off" else None
    fetcher = Fetcher(cache_store=cache_store)
    options = {
        "method": args.method,
        "headers": args.headers,
        "data": args.data,
        "data_encoding": args.data_encoding,
        "follow_redirects": args.follow_redirects,
        "timeout": args.timeout,
        "read_timeout": args.read_timeout,
        "cookies": args.cookies,
        "cache": args.cache,
        "verbose": args.verbose,
        "debug": args.debug,
    }

    resp = asyncio.run(fetcher.fetch(args.url, wait=True, **options))
    assert resp is None or isinstance(resp, FetchResponse)
    if resp is None:
        return 1
    _print(resp, args.include)
    if resp.error():
        LOG.warning("fetch.failed", extra={"extra": {"url": args.url, "status": resp.status("line")}})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
