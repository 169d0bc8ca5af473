"""
Printer connectivity layer.

Uniform transport drivers for USB, network, Bluetooth LE and HTTP API
printers, a connection registry, a print job dispatcher and the bridge relay
service that network printers are reached through.
"""

from .const import DEBUG, LOGGER
from .exceptions import (
    DispatchError,
    PrinterBridgeError,
    PrinterConnectionError,
    PrinterSendError,
    RegistryError,
    RelayBusyError,
    RelayError,
)
from .manager import (
    ConnectionRegistry,
    EventBus,
    JsonPrinterStore,
    MemoryPrinterStore,
    PrintDispatcher,
    PrinterEvent,
)

__all__ = [
    "DEBUG",
    "LOGGER",
    "ConnectionRegistry",
    "DispatchError",
    "EventBus",
    "JsonPrinterStore",
    "MemoryPrinterStore",
    "PrintDispatcher",
    "PrinterBridgeError",
    "PrinterConnectionError",
    "PrinterEvent",
    "PrinterSendError",
    "RegistryError",
    "RelayBusyError",
    "RelayError",
]
