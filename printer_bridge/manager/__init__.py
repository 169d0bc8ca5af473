"""Printer registry, job dispatch and persistence."""

from .dispatcher import PrintDispatcher
from .events import EventBus, PrinterEvent
from .registry import ConnectionRegistry
from .storage import JsonPrinterStore, MemoryPrinterStore, PrinterStore

__all__ = [
    "ConnectionRegistry",
    "EventBus",
    "JsonPrinterStore",
    "MemoryPrinterStore",
    "PrintDispatcher",
    "PrinterEvent",
    "PrinterStore",
]
