"""Shared pytest configuration."""

import asyncio
import socket

import pytest


@pytest.fixture
def anyio_backend() -> str:
    """Run anyio tests on asyncio only; the package is built on asyncio."""
    return "asyncio"


@pytest.fixture
def unused_tcp_port() -> int:
    """Return a localhost TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeTcpPrinter:
    """
    Raw TCP printer on localhost.

    Records the bytes of every session. With ``reply`` set, the printer
    answers the first read with it and hangs up; otherwise it reads until
    the client closes.
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self.host = host
        self.reply = b""
        self.sessions: list[bytes] = []
        self.connections = 0
        self.port = 0
        self._server: asyncio.Server | None = None

    async def start(self, port: int = 0) -> None:
        self._server = await asyncio.start_server(self._handle, self.host, port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def wait_for_sessions(self, count: int, timeout: float = 5.0) -> None:
        async with asyncio.timeout(timeout):
            while len(self.sessions) < count:
                await asyncio.sleep(0.01)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        received = bytearray()
        try:
            if self.reply:
                received.extend(await reader.read(65536))
                writer.write(self.reply)
                await writer.drain()
            else:
                while chunk := await reader.read(65536):
                    received.extend(chunk)
        except ConnectionError:
            pass
        finally:
            self.sessions.append(bytes(received))
            writer.close()


@pytest.fixture
async def tcp_printer():
    """Start a fake raw TCP printer for the duration of a test."""
    printer = FakeTcpPrinter()
    await printer.start()
    yield printer
    await printer.stop()


@pytest.fixture
async def start_tcp_printer():
    """Return a coroutine starting extra fake printers, all stopped after the test."""
    started: list[FakeTcpPrinter] = []

    async def start(host: str = "127.0.0.1", port: int = 0) -> FakeTcpPrinter:
        printer = FakeTcpPrinter(host)
        await printer.start(port)
        started.append(printer)
        return printer

    yield start
    for printer in started:
        await printer.stop()
