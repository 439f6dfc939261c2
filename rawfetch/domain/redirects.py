# /rawfetch/domain/redirects.py
from __future__ import annotations

import logging
from collections.abc import Callable

from rawfetch.domain.models import Method, RequestDescriptor, ResponseStatus
from rawfetch.ports.url_parser import URLParserPort

LOG = logging.getLogger("rawfetch.redirects")

USE_PROXY = 305
NOT_MODIFIED = 304
SEE_OTHER = 303

PROXY_NOT_SUPPORTED = ResponseStatus.synthetic(500, "Redirection through proxy server not supported")
TOO_MANY_REDIRECTS = ResponseStatus.synthetic(500, "Too many redirections")
NOT_FOLLOWED = ResponseStatus.synthetic(200, "Redirect not followed")
BAD_LOCATION = ResponseStatus.synthetic(500, "Invalid redirect location")


def is_redirect(code: int) -> bool:
    return 300 <= code <= 399 and code != NOT_MODIFIED


class RedirectController:
    def __init__(
        self,
        url_parser: URLParserPort,
        redispatch: Callable[[RequestDescriptor], None],
        *,
        max_redirects: int = 10,
    ) -> None:
        self.url_parser = url_parser
        self.redispatch = redispatch
        self.max_redirects = max_redirects

    def handle(self, desc: RequestDescriptor) -> bool:
        """
        Called from completion with a 3xx status. True when a new hop was
        dispatched; False when the descriptor holds a terminal status to deliver.
        """
        assert desc.status is not None
        code = desc.status.code

        if code == USE_PROXY:
            desc.status = PROXY_NOT_SUPPORTED
            return False

        if not desc.follow_redirects:
            desc.status = NOT_FOLLOWED
            desc.buffer = bytearray()
            return False

        location = desc.header("location")
        if not location:
            return False

        if desc.redirects >= self.max_redirects:
            LOG.warning(
                "fetch.too_many_redirects",
                extra={"extra": {"url": desc.original_url, "max": self.max_redirects}},
            )
            desc.status = TOO_MANY_REDIRECTS
            return False

        try:
            target = self.url_parser.join(desc.url, location)
        except ValueError as e:
            LOG.warning(
                "fetch.bad_location",
                extra={"extra": {"url": desc.url, "location": location, "error": str(e)}},
            )
            desc.status = BAD_LOCATION
            return False
        desc.redirects += 1
        if code == SEE_OTHER and desc.method not in (Method.GET, Method.HEAD):
            desc.method = Method.GET
            desc.body = None
            desc.prepared_body = None

        if desc.verbose:
            LOG.info(
                "fetch.redirect",
                extra={"extra": {"from": desc.url, "to": target, "code": code, "hop": desc.redirects}},
            )
        desc.current_url = target
        desc.parsed = None
        desc.reset_attempt()
        self.redispatch(desc)
        return True
