"""HTTP API printer driver."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiohttp

from printer_bridge.const import API_MAX_PAYLOAD_SIZE, API_REQUEST_TIMEOUT, LOGGER
from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, SendErrorKind
from printer_bridge.models.relay import encode_bytes

from .http import HttpTransportDriver

if TYPE_CHECKING:
    from printer_bridge.models.printer import ApiConfig

HTTP_PAYLOAD_TOO_LARGE = 413
AUTH_FAILURE_STATUSES = (401, 403)


async def _error_message(response: aiohttp.ClientResponse) -> str:
    """Extract ``message`` from an error body, falling back to the reason phrase."""
    try:
        body = await response.json(content_type=None)
    except (json.JSONDecodeError, ValueError, aiohttp.ClientError):
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason or "request failed"


class ApiDriver(HttpTransportDriver):
    """
    Submits print data to a remote printer service.

    ``connect`` checks ``GET {endpoint}/status``; every ``send`` is a
    stateless ``POST {endpoint}/print`` carrying the payload as base64.
    """

    max_payload_size = API_MAX_PAYLOAD_SIZE
    config: ApiConfig

    def __init__(
        self,
        config: ApiConfig,
        session: aiohttp.ClientSession | None = None,
        logger: Any = LOGGER,
    ) -> None:
        """Initialize the driver for an API printer config."""
        super().__init__(config, session, logger)
        self._status = "Not connected"
        self.remote_status: dict[str, Any] = {}

    @property
    def status(self) -> str:
        """Return a human readable connection status."""
        return self._status

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=API_REQUEST_TIMEOUT)

    async def connect(self) -> None:
        """
        Check the remote service status.

        Raises:
            PrinterConnectionError: If the service rejects the credentials, is
                unreachable, times out, or does not answer with JSON.

        """
        if self.is_connected:
            return
        self._status = "Testing API connection..."
        try:
            self.remote_status = await self._fetch_status()
        except PrinterConnectionError as err:
            await self._close_session()
            self._status = f"API error: {err.message}"
            raise

        self._is_connected = True
        name = self.remote_status.get("name") or "Remote Printer"
        self._status = f"Connected to API printer: {name}"
        self.logger.info("API printer %s connected at %s", name, self.config.endpoint_url)

    async def _fetch_status(self) -> dict[str, Any]:
        url = f"{self.config.endpoint_url}/status"
        try:
            async with self.session.get(
                url, headers=self._headers(), timeout=self._timeout()
            ) as response:
                if response.status in AUTH_FAILURE_STATUSES:
                    raise PrinterConnectionError(
                        ConnectionErrorKind.PERMISSION_DENIED,
                        f"API connection failed: {response.status} {response.reason}",
                    )
                if not response.ok:
                    raise PrinterConnectionError(
                        ConnectionErrorKind.UNAVAILABLE,
                        f"API connection failed: {response.status} {response.reason}",
                    )
                try:
                    body = await response.json(content_type=None)
                except (json.JSONDecodeError, ValueError) as err:
                    raise PrinterConnectionError(
                        ConnectionErrorKind.PROTOCOL_MISMATCH,
                        "API status response is not JSON",
                    ) from err
        except TimeoutError as err:
            raise PrinterConnectionError(
                ConnectionErrorKind.TIMEOUT, f"API status request to {url} timed out"
            ) from err
        except aiohttp.ClientError as err:
            raise PrinterConnectionError(
                ConnectionErrorKind.UNAVAILABLE, f"API connection failed: {err}"
            ) from err
        return body if isinstance(body, dict) else {}

    async def disconnect(self) -> None:
        """Forget the connection; there is nothing held remotely."""
        self._is_connected = False
        await self._close_session()
        self._status = "Disconnected"

    async def _write(self, data: bytes) -> None:
        url = f"{self.config.endpoint_url}/print"
        body = {
            "data": encode_bytes(data),
            "format": "base64",
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            async with self.session.post(
                url, json=body, headers=self._headers(), timeout=self._timeout()
            ) as response:
                if response.status == HTTP_PAYLOAD_TOO_LARGE:
                    raise PrinterSendError(
                        SendErrorKind.PAYLOAD_TOO_LARGE,
                        f"Print failed: 413 - {await _error_message(response)}",
                    )
                if not response.ok:
                    raise PrinterSendError(
                        SendErrorKind.TRANSPORT_FAILURE,
                        f"Print failed: {response.status} - {await _error_message(response)}",
                    )
                try:
                    result = await response.json(content_type=None)
                except (json.JSONDecodeError, ValueError):
                    result = None
        except TimeoutError as err:
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE, "API print request timed out"
            ) from err
        except aiohttp.ClientError as err:
            raise PrinterSendError(
                SendErrorKind.TRANSPORT_FAILURE, f"API print failed: {err}"
            ) from err

        if isinstance(result, dict) and result.get("jobId"):
            self.logger.debug("Print job submitted: %s", result["jobId"])
