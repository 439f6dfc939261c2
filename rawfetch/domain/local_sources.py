# /rawfetch/domain/local_sources.py
from __future__ import annotations

import base64
import binascii
import mimetypes
import re
from pathlib import Path
from urllib.parse import unquote, unquote_to_bytes

from multidict import CIMultiDict

from rawfetch.domain.models import ResponseStatus

OK = ResponseStatus(code=200, reason="OK", line="HTTP/1.1 200 OK")
INVALID_DATA = ResponseStatus.synthetic(500, "Invalid data")

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

LocalResult = tuple[ResponseStatus, CIMultiDict[str], bytes]


def _headers(content_type: str, body: bytes) -> CIMultiDict[str]:
    return CIMultiDict([("content-type", content_type), ("content-length", str(len(body)))])


def read_file(url_path: str) -> LocalResult:
    path = Path(unquote(url_path.split("?", 1)[0]))
    try:
        body = path.read_bytes()
    except OSError as e:
        return ResponseStatus.synthetic(500, f"Cannot read {path}: {e.strerror or e}"), CIMultiDict(), b""
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return OK, _headers(content_type, body), body


def decode_data_url(url: str) -> LocalResult:
    """
    data:[<mediatype>][;base64],<payload>

    A missing comma, a malformed percent-escape or an undecodable base64
    payload all yield 500 "Invalid data".
    """
    _, _, rest = url.partition(":")
    meta, sep, payload = rest.partition(",")
    if not sep or _BAD_ESCAPE.search(payload):
        return INVALID_DATA, CIMultiDict(), b""

    params = [p.strip() for p in meta.split(";")]
    is_base64 = bool(params) and params[-1].lower() == "base64"
    if is_base64:
        params = params[:-1]
    mediatype = params[0] if params and "/" in params[0] else "text/plain"
    content_type = ";".join([mediatype, *(p for p in params[1:] if p)])

    data = unquote_to_bytes(payload)
    if is_base64:
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return INVALID_DATA, CIMultiDict(), b""
    return OK, _headers(content_type, data), data
