"""Raw network printer driver, reached through the bridge relay service."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import aiohttp

from printer_bridge.const import (
    DEFAULT_RELAY_URL,
    LOGGER,
    RELAY_CLIENT_TIMEOUT,
    RELAY_CONNECT_TIMEOUT,
    RELAY_IDLE_TIMEOUT,
    RELAY_MAX_PAYLOAD_SIZE,
)
from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, RelayErrorKind, SendErrorKind
from printer_bridge.models.relay import RelayRequest, RelayResult

from .http import HttpTransportDriver

if TYPE_CHECKING:
    from printer_bridge.models.printer import NetworkConfig

HTTP_SERVICE_UNAVAILABLE = 503


class NetworkDriver(HttpTransportDriver):
    """
    Sends print data to a TCP printer by posting it to the relay.

    The driver never opens a socket to the printer itself; every ``send`` is
    one relay exchange, i.e. one short-lived TCP session on the relay side.
    """

    max_payload_size = RELAY_MAX_PAYLOAD_SIZE
    config: NetworkConfig

    def __init__(
        self,
        config: NetworkConfig,
        session: aiohttp.ClientSession | None = None,
        logger: Any = LOGGER,
        *,
        response_expected: bool = False,
        connect_timeout: float = RELAY_CONNECT_TIMEOUT,
        idle_timeout: float = RELAY_IDLE_TIMEOUT,
    ) -> None:
        """
        Initialize the driver.

        Arguments:
            config: The network printer config.
            session: Optional shared aiohttp session.
            logger: The logger to use.
            response_expected: Ask the relay to read the printer's reply.
            connect_timeout: Relay side TCP connect timeout in seconds.
            idle_timeout: Relay side idle timeout in seconds.

        """
        super().__init__(config, session, logger)
        self.response_expected = response_expected
        self.connect_timeout = connect_timeout
        self.idle_timeout = idle_timeout
        self.last_response: bytes = b""
        self._status = "Not connected"

    @property
    def relay_url(self) -> str:
        """Return the base URL of the relay serving this printer."""
        return (self.config.relay_url or DEFAULT_RELAY_URL).rstrip("/")

    @property
    def status(self) -> str:
        """Return a human readable connection status."""
        return self._status

    async def connect(self) -> None:
        """
        Check that the relay is up.

        Raises:
            PrinterConnectionError: If the relay cannot be reached.

        """
        if self.is_connected:
            return
        self._status = "Connecting to network printer..."
        try:
            await self._check_relay()
        except PrinterConnectionError as err:
            await self._close_session()
            self._status = f"Network error: {err.message}"
            raise
        self._is_connected = True
        self._status = (
            f"Connected to network printer {self.config.host}:{self.config.port}"
        )
        self.logger.info(
            "Network printer %s:%d ready via relay %s",
            self.config.host,
            self.config.port,
            self.relay_url,
        )

    async def _check_relay(self) -> None:
        url = f"{self.relay_url}/status"
        try:
            async with self.session.get(
                url, timeout=aiohttp.ClientTimeout(total=RELAY_CONNECT_TIMEOUT)
            ) as response:
                if not response.ok:
                    raise PrinterConnectionError(
                        ConnectionErrorKind.UNAVAILABLE,
                        f"Relay status check failed: {response.status}",
                    )
                try:
                    await response.json(content_type=None)
                except (json.JSONDecodeError, ValueError) as err:
                    raise PrinterConnectionError(
                        ConnectionErrorKind.PROTOCOL_MISMATCH,
                        f"{url} did not answer like a relay",
                    ) from err
        except TimeoutError as err:
            raise PrinterConnectionError(
                ConnectionErrorKind.TIMEOUT, f"Relay at {self.relay_url} timed out"
            ) from err
        except aiohttp.ClientError as err:
            raise PrinterConnectionError(
                ConnectionErrorKind.UNAVAILABLE,
                f"Relay at {self.relay_url} is unreachable: {err}",
            ) from err

    async def disconnect(self) -> None:
        """Forget the relay; no printer socket is held between sends."""
        self._is_connected = False
        await self._close_session()
        self._status = "Disconnected"

    async def _write(self, data: bytes) -> None:
        request = RelayRequest(
            host=self.config.host,
            port=self.config.port,
            payload=data,
            response_expected=self.response_expected,
            connect_timeout=self.connect_timeout,
            idle_timeout=self.idle_timeout,
        )
        result = await self._post(request)
        if not result.accepted:
            kind = result.error_kind or RelayErrorKind.UNREACHABLE
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE,
                f"{kind.value}: {result.message or kind.value.replace('_', ' ')}",
                relay_error=kind,
            )
        self.last_response = result.response_bytes
        self.logger.debug(
            "Relay delivered %d bytes to %s:%d in %.1f ms",
            result.bytes_sent,
            self.config.host,
            self.config.port,
            result.elapsed_ms,
        )

    async def _post(self, request: RelayRequest) -> RelayResult:
        url = f"{self.relay_url}/relay"
        try:
            async with self.session.post(
                url,
                json=request.to_dict(),
                timeout=aiohttp.ClientTimeout(total=RELAY_CLIENT_TIMEOUT),
            ) as response:
                if response.status == HTTP_SERVICE_UNAVAILABLE:
                    raise PrinterSendError(
                        SendErrorKind.TRANSPORT_FAILURE,
                        "busy: relay is at capacity",
                        relay_error=RelayErrorKind.BUSY,
                    )
                try:
                    body = await response.json(content_type=None)
                except (json.JSONDecodeError, ValueError) as err:
                    msg = f"Relay answered {response.status} without a result"
                    raise PrinterSendError(SendErrorKind.TRANSPORT_FAILURE, msg) from err
        except TimeoutError as err:
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE, "Relay request timed out"
            ) from err
        except aiohttp.ClientError as err:
            self._is_connected = False
            self._status = "Relay connection lost"
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE, f"Relay is unreachable: {err}"
            ) from err

        if not isinstance(body, dict) or "accepted" not in body:
            msg = body.get("message") if isinstance(body, dict) else None
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE,
                msg or f"Relay answered {response.status} without a result",
            )
        return RelayResult.from_dict(body)
