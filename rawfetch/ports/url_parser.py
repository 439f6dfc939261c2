# /rawfetch/ports/url_parser.py
from __future__ import annotations

from typing import Protocol

from rawfetch.domain.models import ParsedURL


class URLParserPort(Protocol):
    def parse(self, url: str) -> ParsedURL:
        """Split url into scheme/host/port/path/user; host comes back IDNA-encoded."""

    def join(self, base: str, reference: str) -> str:
        """Resolve reference (e.g. a Location value) against base."""
