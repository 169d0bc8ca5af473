"""TCP reachability probes and bulk subnet discovery of raw printers."""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import time
from typing import Any

from printer_bridge.const import (
    DEFAULT_PRINTER_PORT,
    DISCOVERY_CONCURRENCY,
    DISCOVERY_MAX_HOSTS,
    DISCOVERY_PROBE_TIMEOUT,
    LOGGER,
    PROBE_TIMEOUT,
)
from printer_bridge.models.relay import DiscoveredPrinter, ProbeResult


def subnet_hosts(prefix: str, first: int | None = None, last: int | None = None) -> list[str]:
    """
    Expand a subnet prefix into candidate host addresses.

    Arguments:
        prefix: ``"192.168.1"``, ``"192.168.1."`` or a CIDR such as
            ``"192.168.1.0/24"``.
        first: Lowest host number (last octet) to include, 1 by default.
        last: Highest host number (last octet) to include, 254 by default.

    Returns:
        At most 254 IPv4 addresses, in ascending order.

    Raises:
        ValueError: If the prefix or range is malformed.

    """
    first = 1 if first is None else first
    last = DISCOVERY_MAX_HOSTS if last is None else last
    if not 0 <= first <= last <= 255:  # noqa: PLR2004
        msg = f"Invalid host range {first}-{last}"
        raise ValueError(msg)

    text = prefix.strip()
    if "/" in text:
        network = ipaddress.ip_network(text, strict=False)
        if network.version != 4:  # noqa: PLR2004
            msg = "Only IPv4 subnets can be scanned"
            raise ValueError(msg)
        hosts = [
            str(address)
            for address in network.hosts()
            if first <= int(address) & 0xFF <= last
        ]
        return hosts[:DISCOVERY_MAX_HOSTS]

    octets = text.rstrip(".").split(".")
    if len(octets) != 3:  # noqa: PLR2004
        msg = f"Expected a prefix like 192.168.1, got {prefix!r}"
        raise ValueError(msg)
    base = ipaddress.IPv4Address(".".join([*octets, "0"]))
    base_text = str(base).rsplit(".", 1)[0]
    return [f"{base_text}.{number}" for number in range(first, last + 1)][:DISCOVERY_MAX_HOSTS]


async def probe_printer(
    host: str,
    port: int = DEFAULT_PRINTER_PORT,
    timeout: float = PROBE_TIMEOUT,
) -> ProbeResult:
    """Check whether ``host:port`` accepts a TCP connection."""
    started = time.monotonic()
    try:
        async with asyncio.timeout(timeout):
            _, writer = await asyncio.open_connection(host, port)
    except TimeoutError:
        return ProbeResult(host=host, port=port, online=False, error="Connection timed out")
    except OSError as err:
        return ProbeResult(
            host=host, port=port, online=False, error=err.strerror or str(err)
        )

    elapsed = round((time.monotonic() - started) * 1000, 1)
    writer.close()
    with contextlib.suppress(OSError, TimeoutError):
        async with asyncio.timeout(timeout):
            await writer.wait_closed()
    return ProbeResult(host=host, port=port, online=True, response_time_ms=elapsed)


async def discover_hosts(
    hosts: list[str],
    port: int = DEFAULT_PRINTER_PORT,
    timeout: float = DISCOVERY_PROBE_TIMEOUT,
    concurrency: int = DISCOVERY_CONCURRENCY,
    logger: Any = LOGGER,
) -> list[DiscoveredPrinter]:
    """
    Probe ``hosts`` concurrently and return the ones that accepted.

    At most ``concurrency`` probes run at once, so the scan finishes within
    ``ceil(len(hosts) / concurrency) * timeout`` seconds.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def probe(host: str) -> ProbeResult:
        async with semaphore:
            return await probe_printer(host, port, timeout)

    results = await asyncio.gather(*(probe(host) for host in hosts))
    found = [
        DiscoveredPrinter(
            host=result.host,
            port=result.port,
            response_time_ms=result.response_time_ms or 0.0,
        )
        for result in results
        if result.online
    ]
    found.sort(key=lambda printer: ipaddress.ip_address(printer.host))
    logger.info("Discovery probed %d hosts on port %d, found %d", len(hosts), port, len(found))
    return found


async def discover_subnet(
    prefix: str,
    port: int = DEFAULT_PRINTER_PORT,
    timeout: float = DISCOVERY_PROBE_TIMEOUT,
    concurrency: int = DISCOVERY_CONCURRENCY,
    first: int | None = None,
    last: int | None = None,
    logger: Any = LOGGER,
) -> list[DiscoveredPrinter]:
    """
    Scan a /24 style subnet for hosts listening on the printer port.

    Raises:
        ValueError: If the prefix or range is malformed.

    """
    hosts = subnet_hosts(prefix, first, last)
    return await discover_hosts(hosts, port, timeout, concurrency, logger)
