"""
Custom exceptions for printer_bridge.

Every error carries a stable ``kind`` (for programmatic handling) and a
free-text ``message`` (for display).
"""

from __future__ import annotations

from enum import Enum

from printer_bridge.models.enums import (
    ConnectionErrorKind,
    DispatchErrorKind,
    RegistryErrorKind,
    RelayErrorKind,
    SendErrorKind,
)


class PrinterBridgeError(Exception):
    """Base class for other exceptions."""

    kind: Enum

    def __init__(self, kind: Enum, message: str = "") -> None:
        """Store the error kind and the human readable message."""
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(self.message)

    @property
    def status_text(self) -> str:
        """Return a display string of the form ``kind: message``."""
        return f"{self.kind.value}: {self.message}"


class PrinterConnectionError(PrinterBridgeError):
    """Exception raised when a transport driver fails to connect."""

    kind: ConnectionErrorKind


class PrinterSendError(PrinterBridgeError):
    """Exception raised when a transport driver fails to deliver a payload."""

    kind: SendErrorKind

    def __init__(
        self,
        kind: SendErrorKind,
        message: str = "",
        relay_error: RelayErrorKind | None = None,
    ) -> None:
        """Initialize the error, keeping the relay outcome when there was one."""
        super().__init__(kind, message)
        self.relay_error = relay_error


class RelayError(PrinterBridgeError):
    """Exception raised for a failed relay TCP exchange."""

    kind: RelayErrorKind


class RelayBusyError(RelayError):
    """Exception raised when the relay admission queue is full."""

    def __init__(self, message: str = "relay is at capacity") -> None:
        """Initialize a busy error."""
        super().__init__(RelayErrorKind.BUSY, message)


class RegistryError(PrinterBridgeError):
    """Exception raised by the connection registry."""

    kind: RegistryErrorKind


class DispatchError(PrinterBridgeError):
    """Exception raised when a print request cannot be routed."""

    kind: DispatchErrorKind


_RELAY_CONNECT_ERRORS: list[tuple[type[BaseException], RelayErrorKind, str]] = [
    (ConnectionRefusedError, RelayErrorKind.CONNECT_REFUSED, "Printer refused the connection"),
    (TimeoutError, RelayErrorKind.CONNECT_TIMEOUT, "Printer connection timed out"),
    (OSError, RelayErrorKind.UNREACHABLE, "Printer is unreachable"),
]

_RELAY_WRITE_ERRORS: list[tuple[type[BaseException], RelayErrorKind, str]] = [
    (TimeoutError, RelayErrorKind.IDLE_TIMEOUT, "Printer stopped accepting data"),
    (OSError, RelayErrorKind.WRITE_FAILED, "Connection to printer was reset"),
]


def map_transport_exception(exc: BaseException, *, connected: bool) -> RelayError:
    """
    Wrap a low-level socket exception into a ``RelayError``.

    Arguments:
        exc: The exception raised by the socket operation.
        connected: False while connecting, True once the TCP handshake succeeded.

    Returns:
        A RelayError whose ``__cause__`` is the original exception.

    """
    if isinstance(exc, RelayError):
        return exc

    patterns = _RELAY_WRITE_ERRORS if connected else _RELAY_CONNECT_ERRORS
    for exc_type, kind, text in patterns:
        if isinstance(exc, exc_type):
            detail = str(exc)
            error = RelayError(kind, f"{text} ({detail})" if detail else text)
            error.__cause__ = exc
            return error

    error = RelayError(
        RelayErrorKind.WRITE_FAILED if connected else RelayErrorKind.UNREACHABLE,
        str(exc) or type(exc).__name__,
    )
    error.__cause__ = exc
    return error
