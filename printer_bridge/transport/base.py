"""Common interface of the transport drivers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from printer_bridge.const import LOGGER
from printer_bridge.exceptions import PrinterSendError
from printer_bridge.models.enums import SendErrorKind

if TYPE_CHECKING:
    from printer_bridge.models.enums import TransportKind
    from printer_bridge.models.printer import TransportConfig


class TransportDriver(ABC):
    """
    Delivers opaque byte buffers to one physical printer.

    A driver instance is one transport session: ``connect`` opens it,
    ``disconnect`` releases every exclusive resource and may be called any
    number of times, including after a failed ``connect``.
    """

    max_payload_size: int

    def __init__(self, config: TransportConfig, logger: Any = LOGGER) -> None:
        """
        Initialize the driver.

        Arguments:
            config: The transport configuration of the printer.
            logger: The logger to use.

        """
        self.config = config
        self.logger = logger
        self._is_connected = False

    @property
    def kind(self) -> TransportKind:
        """Return the transport kind this driver implements."""
        return self.config.KIND

    @property
    def is_connected(self) -> bool:
        """Return True while the session is usable."""
        return self._is_connected

    @property
    @abstractmethod
    def status(self) -> str:
        """Return a human readable connection status."""

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the transport session.

        Raises:
            PrinterConnectionError: If the printer cannot be reached.

        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session and release its resources."""

    @abstractmethod
    async def _write(self, data: bytes) -> None:
        """Deliver ``data`` over the open session."""

    async def send(self, data: bytes) -> None:
        """
        Deliver a payload to the printer.

        Raises:
            PrinterSendError: If the driver is not connected, the payload is too
                large, or the transport fails.

        """
        if len(data) > self.max_payload_size:
            msg = f"Payload of {len(data)} bytes exceeds the {self.max_payload_size} byte limit"
            raise PrinterSendError(SendErrorKind.PAYLOAD_TOO_LARGE, msg)
        if not self.is_connected:
            raise PrinterSendError(SendErrorKind.NOT_CONNECTED, "Printer not connected")
        self.logger.debug("Sending %d bytes over %s", len(data), self.kind.value)
        await self._write(data)


def split_chunks(data: bytes, size: int) -> list[bytes]:
    """Split ``data`` into consecutive pieces of at most ``size`` bytes."""
    if size <= 0:
        msg = "chunk size must be positive"
        raise ValueError(msg)
    return [data[offset : offset + size] for offset in range(0, len(data), size)]
