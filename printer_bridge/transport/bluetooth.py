"""Bluetooth LE printer driver built on bleak."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from printer_bridge.const import (
    BLE_CHUNK_DELAY,
    BLE_CONNECT_TIMEOUT,
    BLE_DEFAULT_CHUNK_SIZE,
    BLE_MAX_PAYLOAD_SIZE,
    BLE_PRINTER_NAME_PREFIXES,
    BLE_PRINTER_SERVICE_UUIDS,
    BLE_SCAN_TIMEOUT,
    LOGGER,
)
from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, SendErrorKind

from .base import TransportDriver, split_chunks

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData
    from bleak.backends.service import BleakGATTService, BleakGATTServiceCollection

    from printer_bridge.models.printer import BluetoothConfig

WRITE = "write"
WRITE_WITHOUT_RESPONSE = "write-without-response"


def is_printer_name(name: str | None) -> bool:
    """Return True if an advertised name looks like a receipt printer."""
    return bool(name) and name.startswith(BLE_PRINTER_NAME_PREFIXES)


def _printer_filter(device: BLEDevice, advertisement: AdvertisementData) -> bool:
    return is_printer_name(device.name or advertisement.local_name)


async def scan_printers(timeout: float = BLE_SCAN_TIMEOUT) -> list[BLEDevice]:
    """Scan for nearby devices advertising a printer name."""
    devices = await BleakScanner.discover(timeout=timeout)
    return [device for device in devices if is_printer_name(device.name)]


def select_service(services: BleakGATTServiceCollection) -> BleakGATTService | None:
    """
    Pick the GATT service used for printing.

    The known printer services are tried in order; when none is present the
    first discovered service is used.
    """
    for uuid in BLE_PRINTER_SERVICE_UUIDS:
        if (service := services.get_service(uuid)) is not None:
            return service
    return next(iter(services), None)


def select_characteristic(service: BleakGATTService) -> BleakGATTCharacteristic | None:
    """Return the first characteristic of ``service`` that accepts writes."""
    for characteristic in service.characteristics:
        properties = characteristic.properties
        if WRITE in properties or WRITE_WITHOUT_RESPONSE in properties:
            return characteristic
    return None


class BluetoothDriver(TransportDriver):
    """Writes print data to a GATT characteristic in small chunks."""

    max_payload_size = BLE_MAX_PAYLOAD_SIZE
    config: BluetoothConfig

    def __init__(self, config: BluetoothConfig, logger: Any = LOGGER) -> None:
        """Initialize the driver for a Bluetooth printer config."""
        super().__init__(config, logger)
        self._client: BleakClient | None = None
        self._characteristic: BleakGATTCharacteristic | None = None
        self._device_name: str | None = None
        self._status = "Not connected"

    @property
    def chunk_size(self) -> int:
        """Return the number of bytes written per GATT operation."""
        return self.config.chunk_size or BLE_DEFAULT_CHUNK_SIZE

    @property
    def is_connected(self) -> bool:
        """Return True while the GATT link is up."""
        return (
            self._is_connected
            and self._client is not None
            and self._client.is_connected
        )

    @property
    def status(self) -> str:
        """Return a human readable connection status."""
        return self._status

    async def connect(self) -> None:
        """
        Locate the printer, connect and select a writable characteristic.

        Raises:
            PrinterConnectionError: If the printer is not found, the link times
                out, or no writable characteristic exists.

        """
        if self.is_connected:
            return
        self._status = "Scanning for Bluetooth printers..."
        try:
            device = await self._find_device()
            self._status = "Connecting to Bluetooth printer..."
            client = BleakClient(
                device,
                disconnected_callback=self._on_disconnected,
                timeout=BLE_CONNECT_TIMEOUT,
            )
            self._client = client
            await client.connect()
            self._characteristic = self._pick_characteristic(client)
        except PrinterConnectionError as err:
            await self._close()
            self._status = f"Bluetooth error: {err.message}"
            raise
        except TimeoutError as err:
            await self._close()
            self._status = "Bluetooth error: connection timed out"
            raise PrinterConnectionError(
                ConnectionErrorKind.TIMEOUT, "Bluetooth connection timed out"
            ) from err
        except BleakError as err:
            await self._close()
            self._status = f"Bluetooth error: {err}"
            raise PrinterConnectionError(ConnectionErrorKind.UNAVAILABLE, str(err)) from err

        self._is_connected = True
        self._status = "Connected to Bluetooth printer"
        self.logger.info(
            "Bluetooth printer %s connected (characteristic %s)",
            self._device_name,
            self._characteristic.uuid,
        )

    async def disconnect(self) -> None:
        """Drop the GATT link."""
        await self._close()
        self._status = "Disconnected"

    async def _close(self) -> None:
        self._is_connected = False
        client, self._client = self._client, None
        self._characteristic = None
        if client is not None and client.is_connected:
            try:
                await client.disconnect()
            except BleakError as err:
                self.logger.debug("Error disconnecting Bluetooth printer: %s", err)

    async def _find_device(self) -> BLEDevice:
        address = self.config.device_address
        if address:
            device = await BleakScanner.find_device_by_address(address, timeout=BLE_SCAN_TIMEOUT)
        else:
            device = await BleakScanner.find_device_by_filter(
                _printer_filter, timeout=BLE_SCAN_TIMEOUT
            )
        if device is None:
            msg = f"Bluetooth printer {address} not found" if address else "No Bluetooth printer found"
            raise PrinterConnectionError(ConnectionErrorKind.UNAVAILABLE, msg)
        self._device_name = device.name or device.address
        return device

    def _pick_characteristic(self, client: BleakClient) -> BleakGATTCharacteristic:
        service = select_service(client.services)
        if service is None:
            raise PrinterConnectionError(
                ConnectionErrorKind.PROTOCOL_MISMATCH, "No compatible printer service found"
            )
        characteristic = select_characteristic(service)
        if characteristic is None:
            raise PrinterConnectionError(
                ConnectionErrorKind.PROTOCOL_MISMATCH,
                f"No writable characteristic in service {service.uuid}",
            )
        return characteristic

    def _on_disconnected(self, _client: BleakClient) -> None:
        if self._is_connected:
            self.logger.warning("Bluetooth printer %s disconnected", self._device_name)
        self._is_connected = False
        self._status = "Bluetooth printer disconnected"

    async def _write(self, data: bytes) -> None:
        client = self._client
        characteristic = self._characteristic
        if client is None or characteristic is None:
            raise PrinterSendError(SendErrorKind.NOT_CONNECTED, "Printer not connected")

        response = WRITE_WITHOUT_RESPONSE not in characteristic.properties
        chunks = split_chunks(data, self.chunk_size)
        for index, chunk in enumerate(chunks):
            try:
                await client.write_gatt_char(characteristic, chunk, response=response)
            except (BleakError, OSError, TimeoutError) as err:
                msg = f"Bluetooth print failed at chunk {index + 1}/{len(chunks)}: {err}"
                raise PrinterSendError(SendErrorKind.TRANSPORT_FAILURE, msg) from err
            await asyncio.sleep(BLE_CHUNK_DELAY)
        self.logger.debug("Wrote %d bytes in %d Bluetooth chunks", len(data), len(chunks))
