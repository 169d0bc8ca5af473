"""
Bridge relay service.

Forwards opaque print payloads from HTTP and WebSocket clients to raw TCP
printers, one short-lived, time-bounded session per request.
"""

from .config import RelayConfig
from .discovery import discover_hosts, discover_subnet, probe_printer, subnet_hosts
from .limiter import SessionLimiter
from .server import BridgeRelayServer
from .session import relay_exchange

__all__ = [
    "BridgeRelayServer",
    "RelayConfig",
    "SessionLimiter",
    "discover_hosts",
    "discover_subnet",
    "probe_printer",
    "relay_exchange",
    "subnet_hosts",
]
