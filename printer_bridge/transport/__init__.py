"""Transport drivers for the supported printer connection types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from printer_bridge.const import LOGGER
from printer_bridge.models.printer import (
    ApiConfig,
    BluetoothConfig,
    NetworkConfig,
    UsbConfig,
)

from .api import ApiDriver
from .base import TransportDriver, split_chunks
from .bluetooth import BluetoothDriver
from .discovery import (
    discover_bluetooth_printers,
    discover_network_printers,
    discover_usb_printers,
)
from .network import NetworkDriver
from .usb import UsbDriver

if TYPE_CHECKING:
    import aiohttp

    from printer_bridge.models.printer import PrinterIdentity


def create_driver(
    identity: PrinterIdentity,
    session: aiohttp.ClientSession | None = None,
    logger: Any = LOGGER,
) -> TransportDriver:
    """
    Build the driver matching the transport config of ``identity``.

    Arguments:
        identity: The printer to drive.
        session: Shared aiohttp session for the HTTP based drivers.
        logger: The logger to use.

    Returns:
        A new, disconnected driver.

    """
    config = identity.config
    if isinstance(config, UsbConfig):
        return UsbDriver(config, logger)
    if isinstance(config, NetworkConfig):
        return NetworkDriver(config, session, logger)
    if isinstance(config, BluetoothConfig):
        return BluetoothDriver(config, logger)
    if isinstance(config, ApiConfig):
        return ApiDriver(config, session, logger)
    msg = f"Unsupported transport config: {type(config).__name__}"
    raise TypeError(msg)


__all__ = [
    "ApiDriver",
    "BluetoothDriver",
    "NetworkDriver",
    "TransportDriver",
    "UsbDriver",
    "create_driver",
    "discover_bluetooth_printers",
    "discover_network_printers",
    "discover_usb_printers",
    "split_chunks",
]
