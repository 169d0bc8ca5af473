"""Tests for single relay exchanges."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from printer_bridge.models.enums import RelayErrorKind
from printer_bridge.models.relay import RelaySessionDescriptor
from printer_bridge.relay.session import relay_exchange


def target(port, connect_timeout=2.0, idle_timeout=0.5):
    return RelaySessionDescriptor("127.0.0.1", port, connect_timeout, idle_timeout)


def fake_writer(drain=None):
    writer = MagicMock()
    writer.drain = drain or AsyncMock()
    writer.wait_closed = AsyncMock()
    return writer


@pytest.mark.anyio
async def test_delivers_payload(tcp_printer):
    """The payload arrives over one session and the socket is closed."""
    payload = b"\x1b@Hello, printer!\n\x1dV\x00"

    result = await relay_exchange(target(tcp_printer.port), payload)
    await tcp_printer.wait_for_sessions(1)

    assert result.accepted
    assert result.error_kind is None
    assert result.bytes_sent == len(payload)
    assert result.message == f"Sent {len(payload)} bytes to 127.0.0.1:{tcp_printer.port}"
    assert tcp_printer.sessions == [payload]


@pytest.mark.anyio
async def test_each_exchange_is_its_own_session(tcp_printer):
    for index in range(3):
        await relay_exchange(target(tcp_printer.port), f"ticket {index}".encode())
    await tcp_printer.wait_for_sessions(3)

    assert tcp_printer.connections == 3
    assert sorted(tcp_printer.sessions) == [b"ticket 0", b"ticket 1", b"ticket 2"]


@pytest.mark.anyio
async def test_reads_response(tcp_printer):
    """With a response expected the printer's reply is returned."""
    tcp_printer.reply = b"\x12\x00"

    result = await relay_exchange(
        target(tcp_printer.port), b"\x10\x04\x01", response_expected=True
    )

    assert result.accepted
    assert result.response_bytes == b"\x12\x00"


@pytest.mark.anyio
async def test_response_is_capped(tcp_printer):
    tcp_printer.reply = b"x" * 100

    result = await relay_exchange(
        target(tcp_printer.port), b"?", response_expected=True, max_response_size=10
    )

    assert result.response_bytes == b"x" * 10


@pytest.mark.anyio
async def test_silent_printer_is_success(tcp_printer):
    """A printer that never answers ends the read at the idle timeout."""
    result = await relay_exchange(
        target(tcp_printer.port, idle_timeout=0.1), b"data", response_expected=True
    )

    assert result.accepted
    assert result.response_bytes == b""


@pytest.mark.anyio
async def test_connect_refused(unused_tcp_port):
    result = await relay_exchange(target(unused_tcp_port), b"data")

    assert not result.accepted
    assert result.error_kind is RelayErrorKind.CONNECT_REFUSED
    assert result.bytes_sent == 0


@pytest.mark.anyio
async def test_connect_timeout():
    """A connect that does not complete in time is a connect timeout."""

    async def hang(*_args, **_kwargs):
        await asyncio.Event().wait()

    started = time.monotonic()
    with patch("asyncio.open_connection", hang):
        result = await relay_exchange(target(9100, connect_timeout=0.2), b"data")
    elapsed = time.monotonic() - started

    assert result.error_kind is RelayErrorKind.CONNECT_TIMEOUT
    assert 0.15 <= elapsed < 0.2 + 0.3


@pytest.mark.anyio
async def test_write_failure_closes_socket():
    """A reset during the write is reported and the socket still closed."""
    writer = fake_writer(AsyncMock(side_effect=ConnectionResetError(104, "reset by peer")))

    with patch("asyncio.open_connection", AsyncMock(return_value=(MagicMock(), writer))):
        result = await relay_exchange(target(9100), b"data")

    assert result.error_kind is RelayErrorKind.WRITE_FAILED
    writer.close.assert_called_once()


@pytest.mark.anyio
async def test_stalled_write_is_idle_timeout():
    """A printer that stops accepting data times out on the idle timer."""

    async def stall():
        await asyncio.Event().wait()

    writer = fake_writer(stall)

    with patch("asyncio.open_connection", AsyncMock(return_value=(MagicMock(), writer))):
        result = await relay_exchange(target(9100, idle_timeout=0.05), b"data")

    assert result.error_kind is RelayErrorKind.IDLE_TIMEOUT
    assert result.http_status == 504
    writer.close.assert_called_once()


@pytest.mark.anyio
async def test_concurrent_exchanges_are_isolated(start_tcp_printer, unused_tcp_port):
    """A refused destination does not affect exchanges running beside it."""
    printers = [await start_tcp_printer() for _ in range(3)]

    results = await asyncio.gather(
        *(
            relay_exchange(target(printer.port), f"to {index}".encode())
            for index, printer in enumerate(printers)
        ),
        relay_exchange(target(unused_tcp_port), b"nobody home"),
    )
    for printer in printers:
        await printer.wait_for_sessions(1)

    assert [result.accepted for result in results] == [True, True, True, False]
    assert results[-1].error_kind is RelayErrorKind.CONNECT_REFUSED
    assert [printer.sessions for printer in printers] == [[b"to 0"], [b"to 1"], [b"to 2"]]
