"""USB printer driver built on pyusb."""

from __future__ import annotations

import asyncio
import errno
from functools import partial
from typing import TYPE_CHECKING, Any

import usb.core
import usb.util

from printer_bridge.const import (
    LOGGER,
    USB_MAX_PAYLOAD_SIZE,
    USB_PRINTER_CLASS,
    USB_WRITE_CHUNK_SIZE,
    USB_WRITE_TIMEOUT_MS,
)
from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, SendErrorKind

from .base import TransportDriver, split_chunks

if TYPE_CHECKING:
    from collections.abc import Callable

    from printer_bridge.models.printer import UsbConfig


def _is_printer_device(device: Any) -> bool:
    """Return True if any interface of the device is a printer-class interface."""
    try:
        return any(
            intf.bInterfaceClass == USB_PRINTER_CLASS
            for cfg in device
            for intf in cfg
        )
    except usb.core.USBError:
        return False


def _bulk_out_endpoint(interface: Any) -> Any | None:
    """Return the first bulk OUT endpoint of an interface, if any."""
    for endpoint in interface:
        if (
            usb.util.endpoint_direction(endpoint.bEndpointAddress) == usb.util.ENDPOINT_OUT
            and usb.util.endpoint_type(endpoint.bmAttributes) == usb.util.ENDPOINT_TYPE_BULK
        ):
            return endpoint
    return None


def candidate_interfaces(configuration: Any, preferred: int | None = None) -> list[Any]:
    """
    Order the interfaces of a configuration for claiming.

    The configured interface comes first, then printer-class interfaces, then
    the rest, each group by interface number. Only the first alternate setting
    of each interface is kept.

    Arguments:
        configuration: The active pyusb configuration.
        preferred: Interface number requested by the printer config.

    Returns:
        The interfaces in the order they should be tried.

    """
    seen: dict[int, Any] = {}
    for interface in configuration:
        seen.setdefault(interface.bInterfaceNumber, interface)

    def rank(interface: Any) -> tuple[int, int]:
        if preferred is not None and interface.bInterfaceNumber == preferred:
            group = 0
        elif interface.bInterfaceClass == USB_PRINTER_CLASS:
            group = 1
        else:
            group = 2
        return group, interface.bInterfaceNumber

    return sorted(seen.values(), key=rank)


class UsbDriver(TransportDriver):
    """Writes print data to the bulk OUT endpoint of a USB printer."""

    max_payload_size = USB_MAX_PAYLOAD_SIZE
    config: UsbConfig

    def __init__(self, config: UsbConfig, logger: Any = LOGGER) -> None:
        """Initialize the driver for a USB printer config."""
        super().__init__(config, logger)
        self._device: Any = None
        self._endpoint: Any = None
        self._claimed: list[int] = []
        self._detached: list[int] = []
        self._status = "Not connected"

    @property
    def status(self) -> str:
        """Return a human readable connection status."""
        return self._status

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking pyusb call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def connect(self) -> None:
        """
        Open the device and claim an interface with a bulk OUT endpoint.

        Raises:
            PrinterConnectionError: If no device matches, access is denied, or
                no interface can be claimed.

        """
        if self.is_connected:
            return
        self._status = "Connecting..."
        try:
            await self._run(self._open)
        except PrinterConnectionError as err:
            await self._run(self._release)
            self._status = f"Error: {err.message}"
            raise
        self._is_connected = True
        self._status = f"Connected to USB printer {self._describe()}"
        self.logger.info("USB printer %s connected", self._describe())

    async def disconnect(self) -> None:
        """Release claimed interfaces and device resources."""
        self._is_connected = False
        await self._run(self._release)
        self._status = "Disconnected"

    async def _write(self, data: bytes) -> None:
        try:
            await self._run(self._write_chunks, data)
        except usb.core.USBError as err:
            if err.errno == errno.ENODEV:
                self._is_connected = False
                self._status = "Device removed"
            msg = f"USB write failed: {err}"
            raise PrinterSendError(SendErrorKind.TRANSPORT_FAILURE, msg) from err

    def _describe(self) -> str:
        device = self._device
        if device is None:
            return "(none)"
        return f"{device.idVendor:04x}:{device.idProduct:04x}"

    def _find_device(self) -> Any:
        criteria: dict[str, Any] = {}
        if self.config.vendor_id is not None:
            criteria["idVendor"] = self.config.vendor_id
        if self.config.product_id is not None:
            criteria["idProduct"] = self.config.product_id
        if not criteria:
            criteria["custom_match"] = _is_printer_device
        try:
            return usb.core.find(**criteria)
        except usb.core.NoBackendError as err:
            raise PrinterConnectionError(
                ConnectionErrorKind.UNAVAILABLE, "No USB backend available (libusb)"
            ) from err

    def _open(self) -> None:
        """Find the device and commit the first usable interface. Runs in the executor."""
        device = self._find_device()
        if device is None:
            raise PrinterConnectionError(
                ConnectionErrorKind.UNAVAILABLE, "No matching USB printer found"
            )
        self._device = device

        try:
            configuration = device.get_active_configuration()
        except usb.core.USBError:
            try:
                device.set_configuration()
                configuration = device.get_active_configuration()
            except usb.core.USBError as err:
                raise self._connection_error(err, "Could not configure USB device") from err

        denied: usb.core.USBError | None = None
        for interface in candidate_interfaces(configuration, self.config.interface):
            number = interface.bInterfaceNumber
            try:
                self._detach_kernel_driver(number)
                usb.util.claim_interface(device, number)
            except usb.core.USBError as err:
                self.logger.debug("Failed to claim USB interface %d: %s", number, err)
                self._release_interface(number)
                if err.errno == errno.EACCES:
                    denied = err
                continue
            self._claimed.append(number)

            endpoint = _bulk_out_endpoint(interface)
            if endpoint is not None:
                self._endpoint = endpoint
                self.logger.debug(
                    "Claimed USB interface %d, endpoint 0x%02x",
                    number,
                    endpoint.bEndpointAddress,
                )
                return
            self.logger.debug("USB interface %d has no bulk OUT endpoint", number)
            self._release_interface(number)

        if denied is not None:
            raise self._connection_error(denied, "Could not claim any USB interface")
        raise PrinterConnectionError(
            ConnectionErrorKind.UNAVAILABLE, "Could not claim any USB interface"
        )

    def _detach_kernel_driver(self, number: int) -> None:
        try:
            active = self._device.is_kernel_driver_active(number)
        except NotImplementedError:
            return
        if active:
            self._device.detach_kernel_driver(number)
            self._detached.append(number)

    @staticmethod
    def _connection_error(err: usb.core.USBError, text: str) -> PrinterConnectionError:
        if err.errno == errno.EACCES:
            return PrinterConnectionError(
                ConnectionErrorKind.PERMISSION_DENIED,
                f"Permission denied accessing USB printer ({err})",
            )
        return PrinterConnectionError(ConnectionErrorKind.UNAVAILABLE, f"{text}: {err}")

    def _write_chunks(self, data: bytes) -> None:
        """Write ``data`` in bulk transfers. Runs in the executor."""
        for chunk in split_chunks(data, USB_WRITE_CHUNK_SIZE):
            written = self._endpoint.write(chunk, USB_WRITE_TIMEOUT_MS)
            if written != len(chunk):
                msg = f"Short USB write: {written} of {len(chunk)} bytes"
                raise usb.core.USBError(msg)

    def _release_interface(self, number: int) -> None:
        """Give back one claimed interface and its kernel driver."""
        if number in self._claimed:
            self._claimed.remove(number)
            try:
                usb.util.release_interface(self._device, number)
            except usb.core.USBError as err:
                self.logger.debug("Error releasing USB interface %d: %s", number, err)
        if number in self._detached:
            self._detached.remove(number)
            try:
                self._device.attach_kernel_driver(number)
            except usb.core.USBError as err:
                self.logger.debug("Error reattaching kernel driver %d: %s", number, err)

    def _release(self) -> None:
        """Release every claimed interface and dispose of the device. Runs in the executor."""
        device = self._device
        if device is None:
            return
        for number in [*self._claimed, *self._detached]:
            self._release_interface(number)
        usb.util.dispose_resources(device)
        self._endpoint = None
        self._device = None
