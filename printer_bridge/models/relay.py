"""
Relay wire models.

JSON bodies exchanged between the network transport driver and the bridge
relay service. Byte payloads travel base64 encoded; keys are camelCase.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from printer_bridge.const import (
    DEFAULT_PRINTER_PORT,
    RELAY_CONNECT_TIMEOUT,
    RELAY_IDLE_TIMEOUT,
)

from .enums import RelayErrorKind


def _base64_bytes(value: Any) -> bytes:
    if not isinstance(value, str):
        raise vol.Invalid("payload must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        msg = "payload is not valid base64"
        raise vol.Invalid(msg) from err


def _timeout_ms(value: Any) -> float:
    """Convert a millisecond timeout to seconds."""
    return vol.All(vol.Coerce(float), vol.Range(min=1, max=120_000))(value) / 1000


def encode_bytes(data: bytes) -> str:
    """Return ``data`` as a base64 string."""
    return base64.b64encode(data).decode("ascii")


_HOST = vol.All(str, vol.Strip, vol.Length(min=1, max=253))
_PORT = vol.All(vol.Coerce(int), vol.Range(min=1, max=65535))

RELAY_REQUEST_SCHEMA = vol.Schema(
    {
        vol.Required("host"): _HOST,
        vol.Optional("port", default=DEFAULT_PRINTER_PORT): _PORT,
        vol.Required("payload"): _base64_bytes,
        vol.Optional("responseExpected", default=False): vol.Boolean(),
        vol.Optional("connectTimeoutMs"): _timeout_ms,
        vol.Optional("idleTimeoutMs"): _timeout_ms,
    }
)

DISCOVERY_REQUEST_SCHEMA = vol.Schema(
    {
        vol.Required("subnetPrefix"): _HOST,
        vol.Optional("port", default=DEFAULT_PRINTER_PORT): _PORT,
        vol.Optional("timeoutMs"): _timeout_ms,
        vol.Optional("first"): vol.All(vol.Coerce(int), vol.Range(min=0, max=255)),
        vol.Optional("last"): vol.All(vol.Coerce(int), vol.Range(min=0, max=255)),
    }
)

PROBE_REQUEST_SCHEMA = vol.Schema(
    {
        vol.Required("host"): _HOST,
        vol.Optional("port", default=DEFAULT_PRINTER_PORT): _PORT,
        vol.Optional("timeoutMs"): _timeout_ms,
    }
)


@dataclass(frozen=True)
class RelaySessionDescriptor:
    """Target and time bounds of exactly one relay TCP session."""

    host: str
    port: int
    connect_timeout: float = RELAY_CONNECT_TIMEOUT
    idle_timeout: float = RELAY_IDLE_TIMEOUT

    @property
    def address(self) -> str:
        """Return ``host:port`` for log messages."""
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RelayRequest:
    """One TCP exchange the relay performs on behalf of a client."""

    host: str
    port: int
    payload: bytes
    response_expected: bool = False
    connect_timeout: float = RELAY_CONNECT_TIMEOUT
    idle_timeout: float = RELAY_IDLE_TIMEOUT

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        connect_timeout: float = RELAY_CONNECT_TIMEOUT,
        idle_timeout: float = RELAY_IDLE_TIMEOUT,
    ) -> RelayRequest:
        """
        Validate a wire request.

        Timeouts missing from the request fall back to the given defaults.

        Raises:
            vol.Invalid: If the request is malformed.

        """
        valid = RELAY_REQUEST_SCHEMA(data)
        return cls(
            host=valid["host"],
            port=valid["port"],
            payload=valid["payload"],
            response_expected=valid["responseExpected"],
            connect_timeout=valid.get("connectTimeoutMs", connect_timeout),
            idle_timeout=valid.get("idleTimeoutMs", idle_timeout),
        )

    @property
    def descriptor(self) -> RelaySessionDescriptor:
        """Return the session descriptor for this request."""
        return RelaySessionDescriptor(
            host=self.host,
            port=self.port,
            connect_timeout=self.connect_timeout,
            idle_timeout=self.idle_timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {
            "host": self.host,
            "port": self.port,
            "payload": encode_bytes(self.payload),
            "responseExpected": self.response_expected,
            "connectTimeoutMs": int(self.connect_timeout * 1000),
            "idleTimeoutMs": int(self.idle_timeout * 1000),
        }


@dataclass(frozen=True)
class RelayResult:
    """Outcome of one relay exchange."""

    accepted: bool
    response_bytes: bytes = b""
    error_kind: RelayErrorKind | None = None
    message: str = ""
    bytes_sent: int = 0
    elapsed_ms: float = 0.0

    @property
    def http_status(self) -> int:
        """Return the HTTP status the relay answers with for this result."""
        if self.accepted:
            return 200
        if self.error_kind is RelayErrorKind.BUSY:
            return 503
        if self.error_kind is not None and self.error_kind.is_timeout:
            return 504
        return 502

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {
            "accepted": self.accepted,
            "responseBytes": encode_bytes(self.response_bytes) if self.response_bytes else None,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "bytesSent": self.bytes_sent,
            "elapsedMs": round(self.elapsed_ms, 1),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelayResult:
        """Parse a wire result; unknown error kinds are kept as unreachable."""
        raw_response = data.get("responseBytes") or ""
        error_value = data.get("errorKind")
        error_kind = RelayErrorKind.from_value(error_value)
        if error_value and error_kind is None:
            error_kind = RelayErrorKind.UNREACHABLE
        return cls(
            accepted=bool(data.get("accepted")),
            response_bytes=base64.b64decode(raw_response) if raw_response else b"",
            error_kind=error_kind,
            message=str(data.get("message") or ""),
            bytes_sent=int(data.get("bytesSent") or 0),
            elapsed_ms=float(data.get("elapsedMs") or 0.0),
        )


@dataclass(frozen=True)
class ProbeResult:
    """Result of a single TCP reachability probe."""

    host: str
    port: int
    online: bool
    response_time_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {
            "host": self.host,
            "port": self.port,
            "online": self.online,
            "responseTimeMs": self.response_time_ms,
            "error": self.error,
        }


@dataclass(frozen=True)
class DiscoveredPrinter:
    """A host that accepted a connection on the printer port."""

    host: str
    port: int
    response_time_ms: float

    @property
    def id(self) -> str:
        """Return a stable id derived from the address."""
        return f"network_{self.host.replace('.', '_')}"

    @property
    def name(self) -> str:
        """Return a display name."""
        return f"Network Printer ({self.host})"

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "responseTimeMs": self.response_time_ms,
        }


@dataclass(frozen=True)
class RelayStatus:
    """Snapshot of the relay's session counters."""

    in_flight_sessions: int
    waiting_sessions: int
    max_sessions: int
    total_sessions: int
    uptime_seconds: float

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {
            "status": "running",
            "inFlightSessions": self.in_flight_sessions,
            "waitingSessions": self.waiting_sessions,
            "maxSessions": self.max_sessions,
            "totalSessions": self.total_sessions,
            "uptimeSeconds": round(self.uptime_seconds, 1),
        }
