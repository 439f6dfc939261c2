# /rawfetch/adapters/url/yarl_url_parser.py
from __future__ import annotations

from yarl import URL

from rawfetch.domain.models import ParsedURL


class YarlURLParser:
    """yarl does the splitting and IDNA-encodes the host (`raw_host`)."""

    def parse(self, url: str) -> ParsedURL:
        u = URL(url)
        return ParsedURL(
            scheme=(u.scheme or "").lower(),
            host=u.raw_host or "",
            port=u.port,
            path=u.raw_path_qs or "/",
            user=u.user,
            password=u.password,
        )

    def join(self, base: str, reference: str) -> str:
        return str(URL(base).join(URL(reference)))
