"""Printer identity and per-transport configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, ClassVar

import voluptuous as vol

from printer_bridge.const import (
    CONF_API_KEY,
    CONF_CHUNK_SIZE,
    CONF_DEVICE_ADDRESS,
    CONF_ENDPOINT_URL,
    CONF_HOST,
    CONF_ID,
    CONF_INTERFACE,
    CONF_LAST_USED,
    CONF_MODEL,
    CONF_NAME,
    CONF_PAPER_WIDTH,
    CONF_PORT,
    CONF_PRODUCT_ID,
    CONF_RELAY_URL,
    CONF_TYPE,
    CONF_VENDOR_ID,
    PAPER_WIDTHS_MM,
)

from .enums import ConnectionErrorKind, ConnectionStatus, TransportKind


def _usb_id(value: Any) -> int:
    """Accept USB ids as ints or hex strings ("0x04b8", "04b8")."""
    if isinstance(value, bool):
        raise vol.Invalid("expected a USB id")
    if isinstance(value, int):
        number = value
    else:
        # lsusb style: strings are always hex
        try:
            number = int(str(value).strip(), 16)
        except ValueError as err:
            msg = f"invalid USB id: {value!r}"
            raise vol.Invalid(msg) from err
    if not 0 <= number <= 0xFFFF:
        msg = f"USB id out of range: {value!r}"
        raise vol.Invalid(msg)
    return number


def _non_empty(value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise vol.Invalid("must not be empty")
    return text


def _http_url(value: Any) -> str:
    text = _non_empty(value).rstrip("/")
    if not text.startswith(("http://", "https://")):
        raise vol.Invalid("must be an http(s) URL")
    return text


PORT_SCHEMA = vol.All(vol.Coerce(int), vol.Range(min=1, max=65535))

USB_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_VENDOR_ID): _usb_id,
        vol.Optional(CONF_PRODUCT_ID): _usb_id,
        vol.Optional(CONF_INTERFACE): vol.All(vol.Coerce(int), vol.Range(min=0)),
    },
    extra=vol.REMOVE_EXTRA,
)

NETWORK_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): _non_empty,
        vol.Required(CONF_PORT): PORT_SCHEMA,
        vol.Optional(CONF_RELAY_URL): _http_url,
    },
    extra=vol.REMOVE_EXTRA,
)

BLUETOOTH_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEVICE_ADDRESS): _non_empty,
        vol.Optional(CONF_CHUNK_SIZE): vol.All(vol.Coerce(int), vol.Range(min=1, max=512)),
    },
    extra=vol.REMOVE_EXTRA,
)

API_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_ENDPOINT_URL): _http_url,
        vol.Optional(CONF_API_KEY): vol.Any(None, str),
    },
    extra=vol.REMOVE_EXTRA,
)

IDENTITY_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_TYPE): vol.All(
            str, vol.Lower, vol.In([kind.value for kind in TransportKind])
        ),
        vol.Optional(CONF_NAME): vol.Any(None, str),
        vol.Optional(CONF_PAPER_WIDTH): vol.Any(
            None, vol.All(vol.Coerce(int), vol.In(PAPER_WIDTHS_MM))
        ),
        vol.Optional(CONF_MODEL): vol.Any(None, str),
    },
    extra=vol.ALLOW_EXTRA,
)


@dataclass(frozen=True)
class UsbConfig:
    """USB device selection. Without ids the first printer-class device is used."""

    KIND: ClassVar[TransportKind] = TransportKind.USB

    vendor_id: int | None = None
    product_id: int | None = None
    interface: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the config as a serialisable dict."""
        return {
            CONF_VENDOR_ID: self.vendor_id,
            CONF_PRODUCT_ID: self.product_id,
            CONF_INTERFACE: self.interface,
        }


@dataclass(frozen=True)
class NetworkConfig:
    """Raw TCP printer reached through the bridge relay."""

    KIND: ClassVar[TransportKind] = TransportKind.NETWORK

    host: str
    port: int
    relay_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the config as a serialisable dict."""
        return {CONF_HOST: self.host, CONF_PORT: self.port, CONF_RELAY_URL: self.relay_url}


@dataclass(frozen=True)
class BluetoothConfig:
    """Bluetooth LE printer, by address or found by name prefix."""

    KIND: ClassVar[TransportKind] = TransportKind.BLUETOOTH

    device_address: str | None = None
    chunk_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the config as a serialisable dict."""
        return {CONF_DEVICE_ADDRESS: self.device_address, CONF_CHUNK_SIZE: self.chunk_size}


@dataclass(frozen=True)
class ApiConfig:
    """HTTP printer service."""

    KIND: ClassVar[TransportKind] = TransportKind.API

    endpoint_url: str
    api_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the config as a serialisable dict."""
        return {CONF_ENDPOINT_URL: self.endpoint_url, CONF_API_KEY: self.api_key}


TransportConfig = UsbConfig | NetworkConfig | BluetoothConfig | ApiConfig

_CONFIG_TYPES: dict[TransportKind, tuple[vol.Schema, type]] = {
    TransportKind.USB: (USB_SCHEMA, UsbConfig),
    TransportKind.NETWORK: (NETWORK_SCHEMA, NetworkConfig),
    TransportKind.BLUETOOTH: (BLUETOOTH_SCHEMA, BluetoothConfig),
    TransportKind.API: (API_SCHEMA, ApiConfig),
}


def parse_transport_config(kind: TransportKind, data: dict[str, Any]) -> TransportConfig:
    """
    Validate raw transport fields and build the matching config variant.

    Arguments:
        kind: The transport kind the fields belong to.
        data: Raw fields; keys of other transports are ignored.

    Returns:
        The typed config.

    Raises:
        vol.Invalid: If a required field is missing or malformed.

    """
    schema, config_type = _CONFIG_TYPES[kind]
    cleaned = {key: value for key, value in data.items() if value is not None}
    return config_type(**schema(cleaned))


@dataclass
class ConnectionState:
    """Point-in-time connection state of a printer identity."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    message: str = "Not connected"
    error_kind: ConnectionErrorKind | None = None

    @property
    def is_connected(self) -> bool:
        """Return True if the identity has a live session."""
        return self.status is ConnectionStatus.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable snapshot."""
        return {
            "status": self.status.value,
            "message": self.message,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


@dataclass
class PrinterIdentity:
    """
    A registered logical printer, independent of its connection state.

    Attributes:
        id: Opaque unique id generated at registration.
        name: Display name.
        config: Transport specific configuration variant.
        paper_width: Paper width in millimetres (58 or 80), if known.
        model: Free-form model name.
        last_used: Time of the last successful connect or completed job.

    """

    id: str
    name: str
    config: TransportConfig
    paper_width: int | None = None
    model: str | None = None
    last_used: datetime | None = field(default=None, compare=False)

    @property
    def transport_kind(self) -> TransportKind:
        """Return the transport kind of this identity."""
        return self.config.KIND

    def with_updates(
        self, *, name: str | None = None, config: TransportConfig | None = None
    ) -> PrinterIdentity:
        """Return a copy with a new display name and/or transport config."""
        return replace(
            self,
            name=self.name if name is None else name,
            config=self.config if config is None else config,
        )

    def touch(self) -> None:
        """Record that the printer was just used."""
        self.last_used = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted record for this identity."""
        return {
            CONF_ID: self.id,
            CONF_NAME: self.name,
            CONF_TYPE: self.transport_kind.value,
            CONF_PAPER_WIDTH: self.paper_width,
            CONF_MODEL: self.model,
            CONF_LAST_USED: self.last_used.isoformat() if self.last_used else None,
            **self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], printer_id: str | None = None) -> PrinterIdentity:
        """
        Build an identity from a config or persisted record.

        Arguments:
            data: Flat mapping with ``type``, optional ``name``/``paper_width``/``model``
                and the transport fields.
            printer_id: Id to use instead of ``data["id"]``.

        Raises:
            vol.Invalid: If the record does not validate.

        """
        common = IDENTITY_SCHEMA(dict(data))
        kind = TransportKind(common[CONF_TYPE])
        config = parse_transport_config(kind, data)
        identifier = printer_id or data.get(CONF_ID)
        if not identifier:
            raise vol.Invalid("identity record has no id")

        last_used = None
        if raw_last_used := data.get(CONF_LAST_USED):
            try:
                last_used = datetime.fromisoformat(raw_last_used)
            except (TypeError, ValueError):
                last_used = None

        return cls(
            id=str(identifier),
            name=common.get(CONF_NAME) or default_printer_name(config),
            config=config,
            paper_width=common.get(CONF_PAPER_WIDTH),
            model=common.get(CONF_MODEL),
            last_used=last_used,
        )


def default_printer_name(config: TransportConfig) -> str:
    """Return a display name for a printer registered without one."""
    if isinstance(config, NetworkConfig):
        return f"Network Printer ({config.host})"
    if isinstance(config, UsbConfig) and config.vendor_id is not None:
        return f"USB Printer {config.vendor_id:04x}:{(config.product_id or 0):04x}"
    if isinstance(config, BluetoothConfig) and config.device_address:
        return f"Bluetooth Printer ({config.device_address})"
    if isinstance(config, ApiConfig):
        return "Remote Printer"
    return f"{config.KIND.value.capitalize()} Printer"
