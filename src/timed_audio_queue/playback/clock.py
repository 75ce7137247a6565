"""Trusted clock derived from server time samples."""

from __future__ import annotations

import logging
import time
from datetime import UTC
from email.utils import parsedate_to_datetime
from typing import Callable, Literal

logger = logging.getLogger(__name__)

ClockSource = Literal["server", "client"]


class ClockReconciler:
    """Local clock corrected by the last observed server offset.

    Scheduling and expiry compare against server-recorded creation times, so a
    device with a wrong wall clock would otherwise fire or expire plays early or late.
    """

    def __init__(self, local_clock: Callable[[], float] = time.time) -> None:
        self._local_clock = local_clock
        self._offset_ms = 0
        self._source: ClockSource = "client"

    @property
    def offset_ms(self) -> int:
        return self._offset_ms

    @property
    def source(self) -> ClockSource:
        return self._source

    def local_now_ms(self) -> int:
        return int(self._local_clock() * 1000)

    def trusted_now_ms(self) -> int:
        return self.local_now_ms() + self._offset_ms

    def observe_server_time(self, server_ms: int, local_ms: int | None = None) -> int:
        client_ms = self.local_now_ms() if local_ms is None else local_ms
        self._offset_ms = int(server_ms) - client_ms
        self._source = "server"
        logger.info(
            "Clock sample: source=server serverNow=%d clientNow=%d offsetMs=%d",
            server_ms,
            client_ms,
            self._offset_ms,
        )
        return self._offset_ms

    def observe_date_header(self, value: str | None, local_ms: int | None = None) -> bool:
        """Apply an HTTP `Date` header sample; returns False when it is unusable."""
        server_ms = parse_http_date_ms(value)
        if server_ms is None:
            logger.info(
                "Clock sample: source=%s offsetMs=%d reason=missing or invalid Date header",
                self._source,
                self._offset_ms,
            )
            return False
        self.observe_server_time(server_ms, local_ms=local_ms)
        return True


def parse_http_date_ms(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)
