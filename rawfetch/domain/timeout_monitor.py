# /rawfetch/domain/timeout_monitor.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from rawfetch.domain.models import RequestDescriptor

LOG = logging.getLogger("rawfetch.timeout_monitor")


class TimeoutMonitor:
    """
    Periodic tick, independent of data arrival, checking two thresholds:
    overall time since the fetch started and idle time since the last inbound
    byte. A breach hands the descriptor to on_expired exactly once.
    """

    def __init__(self, on_expired: Callable[[RequestDescriptor], None], tick: float) -> None:
        self.on_expired = on_expired
        self.tick = tick

    def start(self, desc: RequestDescriptor) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()
        if desc.start_time is None:
            desc.start_time = now
        desc.last_activity = now
        if not desc.timeout and not desc.read_timeout:
            return
        desc.timer = loop.call_later(self.tick, self._check, desc, desc.attempt)

    def _check(self, desc: RequestDescriptor, attempt: int) -> None:
        if desc.finished or desc.attempt != attempt:
            return
        loop = asyncio.get_running_loop()
        now = loop.time()
        assert desc.start_time is not None and desc.last_activity is not None
        elapsed = now - desc.start_time
        idle = now - desc.last_activity

        breached = None
        if desc.timeout and elapsed > desc.timeout:
            breached = "timeout"
        elif desc.read_timeout and idle > desc.read_timeout:
            breached = "read_timeout"

        if breached is None:
            desc.timer = loop.call_later(self.tick, self._check, desc, attempt)
            return

        desc.timer = None
        LOG.warning(
            "fetch.timeout",
            extra={"extra": {"url": desc.url, "policy": breached, "elapsed": round(elapsed, 3), "idle": round(idle, 3)}},
        )
        self.on_expired(desc)

    @staticmethod
    def cancel(desc: RequestDescriptor) -> None:
        if desc.timer is not None:
            desc.timer.cancel()
            desc.timer = None
