"""Printer bridge enums."""

from enum import Enum


class TransportKind(Enum):
    """
    The communication mechanism used to reach a physical printer.

    Attributes:
        USB: Direct USB bulk transfer.
        NETWORK: Raw TCP (port 9100) through the bridge relay.
        BLUETOOTH: Bluetooth Low Energy GATT characteristic writes.
        API: HTTP printer service.

    Example:
        >>> TransportKind.from_value("usb")
        <TransportKind.USB: 'usb'>

    """

    USB = "usb"
    NETWORK = "network"
    BLUETOOTH = "bluetooth"
    API = "api"

    @classmethod
    def from_value(cls, value: str | None) -> "TransportKind | None":
        """
        Convert a string to a TransportKind member.

        Arguments:
            value: The transport name, case insensitive.

        Returns:
            The matching member, or None if the value is unknown.

        """
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ConnectionStatus(Enum):
    """Runtime connection status of a printer identity."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class JobStatus(Enum):
    """
    Lifecycle status of a print job.

    Statuses only move forward: PENDING -> SENDING -> COMPLETED | FAILED.
    A pending job that never reaches a driver may fail directly.
    """

    PENDING = "pending"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True if no further transition is possible."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ConnectionErrorKind(Enum):
    """Why a driver could not connect."""

    UNAVAILABLE = "unavailable"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    PROTOCOL_MISMATCH = "protocol_mismatch"


class SendErrorKind(Enum):
    """Why a driver could not deliver a payload."""

    NOT_CONNECTED = "not_connected"
    TRANSPORT_FAILURE = "transport_failure"
    PAYLOAD_TOO_LARGE = "payload_too_large"


class RelayErrorKind(Enum):
    """Named outcomes of a failed relay exchange."""

    CONNECT_REFUSED = "connect_refused"
    CONNECT_TIMEOUT = "connect_timeout"
    UNREACHABLE = "unreachable"
    WRITE_FAILED = "write_failed"
    IDLE_TIMEOUT = "idle_timeout"
    BUSY = "busy"

    @classmethod
    def from_value(cls, value: str | None) -> "RelayErrorKind | None":
        """Convert a wire value to a member, or None if unknown."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_timeout(self) -> bool:
        """Return True for the timeout outcomes."""
        return self in (RelayErrorKind.CONNECT_TIMEOUT, RelayErrorKind.IDLE_TIMEOUT)


class RegistryErrorKind(Enum):
    """Failures reported by the connection registry."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_CONFIG = "invalid_config"


class DispatchErrorKind(Enum):
    """Reasons a send request is rejected before a job is created."""

    NO_TARGET = "no_target"
    NOT_CONNECTED = "not_connected"


class PrinterEventType(Enum):
    """Notifications emitted by the registry and the dispatcher."""

    IDENTITIES_CHANGED = "identities_changed"
    STATE_CHANGED = "state_changed"
    ACTIVE_CHANGED = "active_changed"
    JOB_ADDED = "job_added"
    JOB_UPDATED = "job_updated"
    JOB_REMOVED = "job_removed"
    JOBS_CLEARED = "jobs_cleared"
