# /rawfetch/ports/transport.py
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from rawfetch.domain.events import TransportEvent


class TransportHandle(Protocol):
    def send(self, data: bytes) -> None:
        """Queue bytes for the peer."""

    def close(self) -> None:
        """Close the stream. Safe to call more than once."""

    def session_info(self) -> dict[str, Any]:
        """Secure-session metadata (peer certificate, cipher, version); empty for plain streams."""


class TransportPort(Protocol):
    def open(
        self,
        host: str,
        port: int,
        *,
        secure: bool,
        on_event: Callable[[TransportEvent], None],
    ) -> TransportHandle:
        """Start connecting; every outcome arrives later through on_event."""
