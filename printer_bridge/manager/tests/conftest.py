"""Fixtures for the registry and dispatcher tests."""

import asyncio

import pytest

from printer_bridge.exceptions import PrinterSendError
from printer_bridge.models.printer import PrinterIdentity
from printer_bridge.transport.base import TransportDriver


class FakeDriver(TransportDriver):
    """Scriptable driver recording connects, disconnects and writes."""

    max_payload_size = 1 << 20

    def __init__(self, identity: PrinterIdentity) -> None:
        super().__init__(identity.config)
        self.identity = identity
        self.connect_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.send_error: PrinterSendError | None = None
        self.drop_on_error = False
        self.disconnect_delay = 0.0
        self.send_gate: asyncio.Event | None = None
        self.connects = 0
        self.disconnects = 0
        self.sent: list[bytes] = []
        self.writing = 0
        self.max_writing = 0

    @property
    def status(self) -> str:
        return f"Connected to fake {self.identity.id}" if self._is_connected else "Not connected"

    async def connect(self) -> None:
        self.connects += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self._is_connected = True

    async def disconnect(self) -> None:
        self.disconnects += 1
        if self.disconnect_delay:
            await asyncio.sleep(self.disconnect_delay)
        self._is_connected = False

    async def _write(self, data: bytes) -> None:
        self.writing += 1
        self.max_writing = max(self.max_writing, self.writing)
        try:
            if self.send_gate is not None:
                await self.send_gate.wait()
            else:
                await asyncio.sleep(0)
            if self.send_error is not None:
                if self.drop_on_error:
                    self._is_connected = False
                raise self.send_error
            self.sent.append(data)
        finally:
            self.writing -= 1


class DriverFactory:
    """
    Driver factory handing out FakeDrivers.

    Behaviour for the next driver of a printer is scripted through ``setup``,
    a callable applied to every new driver.
    """

    def __init__(self) -> None:
        self.created: list[FakeDriver] = []
        self.setup = None

    def __call__(self, identity: PrinterIdentity) -> FakeDriver:
        driver = FakeDriver(identity)
        if self.setup is not None:
            self.setup(driver)
        self.created.append(driver)
        return driver

    def for_printer(self, printer_id: str) -> list[FakeDriver]:
        return [driver for driver in self.created if driver.identity.id == printer_id]


@pytest.fixture
def factory() -> DriverFactory:
    return DriverFactory()

