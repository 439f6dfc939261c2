# /rawfetch/domain/header_parser.py
from __future__ import annotations

import re

from multidict import CIMultiDict

from rawfetch.domain.models import ResponseStatus

_STATUS_LINE = re.compile(r"^(\S+)[ \t]+(\d{3})(?:[ \t]+(.*))?$")


def parse_status_line(line: str) -> ResponseStatus:
    """A well-formed `VERSION CODE REASON` line, or the raw line kept as an opaque status (code 0)."""
    line = line.rstrip("\r")
    match = _STATUS_LINE.match(line)
    if not match:
        return ResponseStatus(code=0, reason="", line=line)
    return ResponseStatus(code=int(match.group(2)), reason=(match.group(3) or "").strip(), line=line)


def parse_head(head: bytes) -> tuple[ResponseStatus, CIMultiDict[str]]:
    """Parse the status line and `Name: Value` lines up to the blank separator."""
    text = head.decode("latin-1")
    lines = text.split("\n")
    status = parse_status_line(lines[0])

    headers: CIMultiDict[str] = CIMultiDict()
    last: str | None = None
    for raw in lines[1:]:
        line = raw.rstrip("\r")
        if not line.strip():
            break
        if line[0] in " \t" and last is not None:
            # obsolete line folding
            values = headers.popall(last)
            values[-1] = f"{values[-1]} {line.strip()}"
            headers.extend((last, v) for v in values)
            continue
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            continue
        last = name.strip()
        headers.add(last, value.strip())
    return status, headers
