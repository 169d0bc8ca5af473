"""One relay exchange: a single short-lived TCP session to a printer."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any

from printer_bridge.const import LOGGER, RELAY_MAX_RESPONSE_SIZE, RELAY_READ_CHUNK_SIZE
from printer_bridge.exceptions import map_transport_exception
from printer_bridge.models.relay import RelayResult

if TYPE_CHECKING:
    from printer_bridge.models.relay import RelaySessionDescriptor


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


async def _read_response(
    reader: asyncio.StreamReader, idle_timeout: float, max_size: int
) -> bytes:
    """Read until EOF, an idle gap of ``idle_timeout`` or ``max_size`` bytes."""
    received = bytearray()
    while len(received) < max_size:
        try:
            async with asyncio.timeout(idle_timeout):
                chunk = await reader.read(min(RELAY_READ_CHUNK_SIZE, max_size - len(received)))
        except (TimeoutError, OSError):
            break
        if not chunk:
            break
        received.extend(chunk)
    return bytes(received)


async def relay_exchange(
    descriptor: RelaySessionDescriptor,
    payload: bytes,
    *,
    response_expected: bool = False,
    max_response_size: int = RELAY_MAX_RESPONSE_SIZE,
    logger: Any = LOGGER,
) -> RelayResult:
    """
    Deliver ``payload`` to ``descriptor.host:descriptor.port``.

    Opens a new TCP connection bounded by the connect timeout, writes the
    whole payload with each drain bounded by the idle timeout, optionally
    reads the printer's reply, and always closes the socket. A printer that
    sends nothing back is a success.

    Arguments:
        descriptor: Target and timeouts of the session.
        payload: The bytes to deliver.
        response_expected: Read the printer's reply after writing.
        max_response_size: Cap on the number of reply bytes kept.
        logger: The logger to use.

    Returns:
        The result; failures carry a relay error kind instead of raising.

    """
    started = time.monotonic()
    address = descriptor.address
    try:
        async with asyncio.timeout(descriptor.connect_timeout):
            reader, writer = await asyncio.open_connection(descriptor.host, descriptor.port)
    except (OSError, TimeoutError) as err:
        error = map_transport_exception(err, connected=False)
        logger.debug("Relay connect to %s failed: %s", address, error.status_text)
        return RelayResult(
            accepted=False,
            error_kind=error.kind,
            message=error.message,
            elapsed_ms=_elapsed_ms(started),
        )

    try:
        try:
            writer.write(payload)
            async with asyncio.timeout(descriptor.idle_timeout):
                await writer.drain()
        except (OSError, TimeoutError) as err:
            error = map_transport_exception(err, connected=True)
            logger.debug("Relay write to %s failed: %s", address, error.status_text)
            return RelayResult(
                accepted=False,
                error_kind=error.kind,
                message=error.message,
                elapsed_ms=_elapsed_ms(started),
            )

        response = b""
        if response_expected:
            response = await _read_response(reader, descriptor.idle_timeout, max_response_size)
    finally:
        writer.close()
        with contextlib.suppress(OSError, TimeoutError):
            async with asyncio.timeout(descriptor.idle_timeout):
                await writer.wait_closed()

    logger.debug(
        "Relayed %d bytes to %s (%d bytes back)", len(payload), address, len(response)
    )
    return RelayResult(
        accepted=True,
        response_bytes=response,
        message=f"Sent {len(payload)} bytes to {address}",
        bytes_sent=len(payload),
        elapsed_ms=_elapsed_ms(started),
    )
