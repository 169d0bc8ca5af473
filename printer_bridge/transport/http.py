"""Shared aiohttp session handling for the HTTP based drivers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import aiohttp

from printer_bridge.const import LOGGER

from .base import TransportDriver

if TYPE_CHECKING:
    from printer_bridge.models.printer import TransportConfig


class HttpTransportDriver(TransportDriver):
    """
    Driver talking to an HTTP service.

    An injected ``aiohttp.ClientSession`` is used as is and never closed by
    the driver. Without one the driver opens its own session on connect and
    closes it on disconnect.
    """

    def __init__(
        self,
        config: TransportConfig,
        session: aiohttp.ClientSession | None = None,
        logger: Any = LOGGER,
    ) -> None:
        """Initialize the driver with an optional shared client session."""
        super().__init__(config, logger)
        self._shared_session = session
        self._own_session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Return the session to issue requests with."""
        if self._shared_session is not None:
            return self._shared_session
        if self._own_session is None or self._own_session.closed:
            self._own_session = aiohttp.ClientSession()
        return self._own_session

    async def _close_session(self) -> None:
        session, self._own_session = self._own_session, None
        if session is not None and not session.closed:
            await session.close()
