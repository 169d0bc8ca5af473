"""Models for printer_bridge."""

from .enums import (
    ConnectionErrorKind,
    ConnectionStatus,
    DispatchErrorKind,
    JobStatus,
    PrinterEventType,
    RegistryErrorKind,
    RelayErrorKind,
    SendErrorKind,
    TransportKind,
)
from .job import PrintJob, new_job_id
from .printer import (
    ApiConfig,
    BluetoothConfig,
    ConnectionState,
    NetworkConfig,
    PrinterIdentity,
    TransportConfig,
    UsbConfig,
    parse_transport_config,
)
from .relay import (
    DiscoveredPrinter,
    ProbeResult,
    RelayRequest,
    RelayResult,
    RelaySessionDescriptor,
    RelayStatus,
)

__all__ = [
    "ApiConfig",
    "BluetoothConfig",
    "ConnectionErrorKind",
    "ConnectionState",
    "ConnectionStatus",
    "DiscoveredPrinter",
    "DispatchErrorKind",
    "JobStatus",
    "NetworkConfig",
    "PrintJob",
    "PrinterEventType",
    "PrinterIdentity",
    "ProbeResult",
    "RegistryErrorKind",
    "RelayErrorKind",
    "RelayRequest",
    "RelayResult",
    "RelaySessionDescriptor",
    "RelayStatus",
    "SendErrorKind",
    "TransportConfig",
    "TransportKind",
    "UsbConfig",
    "new_job_id",
    "parse_transport_config",
]
