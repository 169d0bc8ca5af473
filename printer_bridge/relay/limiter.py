"""Admission control for concurrent relay sessions."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from printer_bridge.const import RELAY_MAX_SESSIONS, RELAY_MAX_WAITING
from printer_bridge.exceptions import RelayBusyError
from printer_bridge.models.relay import RelayStatus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class SessionLimiter:
    """
    Caps the number of concurrent relay sessions.

    Up to ``max_sessions`` sessions run at once and up to ``max_waiting``
    further callers queue for a slot; anyone beyond that is rejected with
    ``RelayBusyError``. Counters are only touched from the event loop.
    """

    def __init__(
        self,
        max_sessions: int = RELAY_MAX_SESSIONS,
        max_waiting: int = RELAY_MAX_WAITING,
    ) -> None:
        """Initialize the limiter."""
        if max_sessions < 1:
            msg = "max_sessions must be at least 1"
            raise ValueError(msg)
        self.max_sessions = max_sessions
        self.max_waiting = max(0, max_waiting)
        self.in_flight = 0
        self.waiting = 0
        self.total = 0
        self.started_at = time.monotonic()
        self._semaphore = asyncio.Semaphore(max_sessions)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """
        Hold a session slot for the duration of the block.

        Raises:
            RelayBusyError: If every slot is taken and the queue is full.

        """
        if self.in_flight + self.waiting >= self.max_sessions + self.max_waiting:
            raise RelayBusyError
        self.waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.waiting -= 1

        self.in_flight += 1
        self.total += 1
        try:
            yield
        finally:
            self.in_flight -= 1
            self._semaphore.release()

    def snapshot(self) -> RelayStatus:
        """Return the current counters."""
        return RelayStatus(
            in_flight_sessions=self.in_flight,
            waiting_sessions=self.waiting,
            max_sessions=self.max_sessions,
            total_sessions=self.total,
            uptime_seconds=time.monotonic() - self.started_at,
        )
