"""Tests for the Bluetooth driver, with bleak replaced by fakes."""

from collections.abc import Iterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak.exc import BleakError

from printer_bridge.const import BLE_PRINTER_SERVICE_UUIDS
from printer_bridge.exceptions import PrinterConnectionError, PrinterSendError
from printer_bridge.models.enums import ConnectionErrorKind, SendErrorKind
from printer_bridge.models.printer import BluetoothConfig
from printer_bridge.transport.bluetooth import (
    BluetoothDriver,
    is_printer_name,
    select_characteristic,
    select_service,
)


def characteristic(uuid: str, *properties: str) -> SimpleNamespace:
    return SimpleNamespace(uuid=uuid, properties=list(properties))


def service(uuid: str, *characteristics: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(uuid=uuid, characteristics=list(characteristics))


class FakeServices:
    """Stand-in for a GATT service collection."""

    def __init__(self, *services: SimpleNamespace) -> None:
        self._services = {item.uuid: item for item in services}

    def get_service(self, uuid: str) -> SimpleNamespace | None:
        return self._services.get(uuid)

    def __iter__(self) -> Iterator[SimpleNamespace]:
        return iter(self._services.values())


WRITABLE = characteristic("char-w", "read", "write-without-response")
PRINT_SERVICE = service(BLE_PRINTER_SERVICE_UUIDS[1], characteristic("char-r", "read"), WRITABLE)


@pytest.fixture
def ble() -> Iterator[SimpleNamespace]:
    """Patch the scanner and client used by the driver."""
    client = MagicMock()
    client.is_connected = True
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.write_gatt_char = AsyncMock()
    client.services = FakeServices(PRINT_SERVICE)
    device = SimpleNamespace(name="TSP143", address="AA:BB:CC:DD:EE:FF")

    with (
        patch("printer_bridge.transport.bluetooth.BleakScanner") as scanner,
        patch("printer_bridge.transport.bluetooth.BleakClient", return_value=client) as factory,
    ):
        scanner.find_device_by_address = AsyncMock(return_value=device)
        scanner.find_device_by_filter = AsyncMock(return_value=device)
        yield SimpleNamespace(client=client, device=device, scanner=scanner, factory=factory)


def test_is_printer_name() -> None:
    """Advertised names are matched on known prefixes."""
    assert is_printer_name("TM-m30")
    assert is_printer_name("Printer_1234")
    assert not is_printer_name("Headphones")
    assert not is_printer_name(None)


def test_select_service_order() -> None:
    """Known printer services win over unknown ones, in their listed order."""
    other = service("0000180a-0000-1000-8000-00805f9b34fb")
    nordic = service(BLE_PRINTER_SERVICE_UUIDS[2])
    issc = service(BLE_PRINTER_SERVICE_UUIDS[1])

    assert select_service(FakeServices(other, nordic, issc)) is issc
    assert select_service(FakeServices(other, nordic)) is nordic
    assert select_service(FakeServices(other)) is other
    assert select_service(FakeServices()) is None


def test_select_characteristic() -> None:
    """The first writable characteristic is chosen."""
    first = characteristic("a", "write")
    chosen = select_characteristic(service("s", characteristic("r", "read", "notify"), first))
    assert chosen is first
    assert select_characteristic(service("s", characteristic("r", "read"))) is None


@pytest.mark.anyio
async def test_connect_by_address(ble: SimpleNamespace) -> None:
    """A configured address is looked up directly."""
    driver = BluetoothDriver(BluetoothConfig(device_address="AA:BB:CC:DD:EE:FF"))
    await driver.connect()

    ble.scanner.find_device_by_address.assert_awaited_once()
    ble.scanner.find_device_by_filter.assert_not_called()
    assert ble.factory.call_args.args == (ble.device,)
    ble.client.connect.assert_awaited_once()
    assert driver.is_connected
    assert driver.status == "Connected to Bluetooth printer"


@pytest.mark.anyio
async def test_connect_without_address_scans(ble: SimpleNamespace) -> None:
    """Without an address the first printer-like device is used."""
    driver = BluetoothDriver(BluetoothConfig())
    await driver.connect()
    ble.scanner.find_device_by_filter.assert_awaited_once()
    assert driver.is_connected


@pytest.mark.anyio
async def test_connect_device_not_found(ble: SimpleNamespace) -> None:
    """A missing device is unavailable and no client is created."""
    ble.scanner.find_device_by_filter.return_value = None
    driver = BluetoothDriver(BluetoothConfig())
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is ConnectionErrorKind.UNAVAILABLE
    ble.factory.assert_not_called()


@pytest.mark.anyio
async def test_connect_without_writable_characteristic(ble: SimpleNamespace) -> None:
    """A service with nothing writable is a protocol mismatch and the link is dropped."""
    ble.client.services = FakeServices(service(BLE_PRINTER_SERVICE_UUIDS[0], characteristic("r", "read")))
    driver = BluetoothDriver(BluetoothConfig())
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is ConnectionErrorKind.PROTOCOL_MISMATCH
    ble.client.disconnect.assert_awaited_once()
    assert not driver.is_connected


@pytest.mark.anyio
async def test_connect_timeout(ble: SimpleNamespace) -> None:
    """A GATT connect timeout is reported as a timeout."""
    ble.client.connect.side_effect = TimeoutError
    driver = BluetoothDriver(BluetoothConfig())
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is ConnectionErrorKind.TIMEOUT


@pytest.mark.anyio
async def test_connect_bleak_error(ble: SimpleNamespace) -> None:
    """Adapter errors are reported as unavailable."""
    ble.scanner.find_device_by_filter.side_effect = BleakError("Bluetooth adapter is off")
    driver = BluetoothDriver(BluetoothConfig())
    with pytest.raises(PrinterConnectionError) as err:
        await driver.connect()
    assert err.value.kind is ConnectionErrorKind.UNAVAILABLE
    assert "adapter is off" in driver.status


@pytest.mark.anyio
async def test_send_in_chunks(ble: SimpleNamespace) -> None:
    """Payloads go out in chunks of the configured size, in order."""
    driver = BluetoothDriver(BluetoothConfig())
    await driver.connect()

    payload = bytes(range(50))
    await driver.send(payload)

    calls = ble.client.write_gatt_char.await_args_list
    assert len(calls) == 3
    assert [call.args[1] for call in calls] == [payload[:20], payload[20:40], payload[40:]]
    assert all(call.args[0] is WRITABLE for call in calls)
    assert all(call.kwargs == {"response": False} for call in calls)


@pytest.mark.anyio
async def test_send_with_response_and_custom_chunk(ble: SimpleNamespace) -> None:
    """Write-with-response characteristics are acknowledged per chunk."""
    acked = characteristic("char-ack", "write")
    ble.client.services = FakeServices(service(BLE_PRINTER_SERVICE_UUIDS[0], acked))
    driver = BluetoothDriver(BluetoothConfig(chunk_size=100))
    await driver.connect()

    await driver.send(b"x" * 250)

    calls = ble.client.write_gatt_char.await_args_list
    assert [len(call.args[1]) for call in calls] == [100, 100, 50]
    assert all(call.kwargs == {"response": True} for call in calls)


@pytest.mark.anyio
async def test_send_chunk_failure(ble: SimpleNamespace) -> None:
    """A failed chunk aborts the job and names the chunk."""
    ble.client.write_gatt_char.side_effect = [None, BleakError("GATT write failed")]
    driver = BluetoothDriver(BluetoothConfig())
    await driver.connect()

    with pytest.raises(PrinterSendError) as err:
        await driver.send(b"y" * 60)
    assert err.value.kind is SendErrorKind.TRANSPORT_FAILURE
    assert "chunk 2/3" in err.value.message
    assert ble.client.write_gatt_char.await_count == 2


@pytest.mark.anyio
async def test_remote_disconnect(ble: SimpleNamespace) -> None:
    """A link dropped by the printer marks the driver disconnected."""
    driver = BluetoothDriver(BluetoothConfig())
    await driver.connect()

    callback = ble.factory.call_args.kwargs["disconnected_callback"]
    ble.client.is_connected = False
    callback(ble.client)

    assert not driver.is_connected
    assert driver.status == "Bluetooth printer disconnected"
    with pytest.raises(PrinterSendError) as err:
        await driver.send(b"z")
    assert err.value.kind is SendErrorKind.NOT_CONNECTED


@pytest.mark.anyio
async def test_disconnect(ble: SimpleNamespace) -> None:
    """Disconnect drops the link and can be repeated."""
    driver = BluetoothDriver(BluetoothConfig())
    await driver.connect()
    await driver.disconnect()
    await driver.disconnect()

    ble.client.disconnect.assert_awaited_once()
    assert not driver.is_connected
    assert driver.status == "Disconnected"
