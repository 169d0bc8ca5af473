"""
Finding printers that can be registered.

Each helper returns plain config dicts that ``ConnectionRegistry.register``
accepts as they are. A transport that cannot be searched (no libusb, no
Bluetooth adapter, relay down) yields an empty list and a warning.
"""

from __future__ import annotations

import asyncio
import json
from functools import partial
from typing import Any

import aiohttp
import usb.core
import usb.util
from bleak.exc import BleakError

from printer_bridge.const import (
    BLE_SCAN_TIMEOUT,
    CONF_DEVICE_ADDRESS,
    CONF_HOST,
    CONF_NAME,
    CONF_PORT,
    CONF_PRODUCT_ID,
    CONF_RELAY_URL,
    CONF_TYPE,
    CONF_VENDOR_ID,
    DEFAULT_PRINTER_PORT,
    DEFAULT_RELAY_URL,
    DISCOVERY_CLIENT_TIMEOUT,
    LOGGER,
)
from printer_bridge.models.enums import TransportKind

from .bluetooth import scan_printers
from .usb import _is_printer_device


def _usb_product_name(device: Any) -> str | None:
    try:
        if device.iProduct:
            return usb.util.get_string(device, device.iProduct)
    except (usb.core.USBError, ValueError, NotImplementedError):
        return None
    return None


def _find_usb_printers(logger: Any) -> list[dict[str, Any]]:
    try:
        devices = list(usb.core.find(find_all=True, custom_match=_is_printer_device))
    except usb.core.NoBackendError:
        logger.warning("USB discovery unavailable: no libusb backend")
        return []

    printers = []
    for device in devices:
        ids = f"{device.idVendor:04x}:{device.idProduct:04x}"
        printers.append(
            {
                CONF_TYPE: TransportKind.USB.value,
                CONF_NAME: _usb_product_name(device) or f"USB Printer {ids}",
                CONF_VENDOR_ID: device.idVendor,
                CONF_PRODUCT_ID: device.idProduct,
            }
        )
    return printers


async def discover_usb_printers(logger: Any = LOGGER) -> list[dict[str, Any]]:
    """Enumerate attached USB devices exposing a printer-class interface."""
    loop = asyncio.get_running_loop()
    printers = await loop.run_in_executor(None, partial(_find_usb_printers, logger))
    logger.debug("Found %d USB printers", len(printers))
    return printers


async def discover_bluetooth_printers(
    timeout: float = BLE_SCAN_TIMEOUT, logger: Any = LOGGER
) -> list[dict[str, Any]]:
    """Scan for Bluetooth LE devices advertising a printer name."""
    try:
        devices = await scan_printers(timeout)
    except (BleakError, OSError) as err:
        logger.warning("Bluetooth discovery failed: %s", err)
        return []
    return [
        {
            CONF_TYPE: TransportKind.BLUETOOTH.value,
            CONF_NAME: device.name,
            CONF_DEVICE_ADDRESS: device.address,
        }
        for device in devices
    ]


async def discover_network_printers(
    subnet_prefix: str,
    relay_url: str | None = None,
    session: aiohttp.ClientSession | None = None,
    *,
    port: int = DEFAULT_PRINTER_PORT,
    logger: Any = LOGGER,
) -> list[dict[str, Any]]:
    """
    Ask the bridge relay to scan a subnet for raw TCP printers.

    Arguments:
        subnet_prefix: Subnet to scan, e.g. ``192.168.1`` or ``192.168.1.0/24``.
        relay_url: Base URL of the relay, ``DEFAULT_RELAY_URL`` when omitted.
        session: Shared aiohttp session; a temporary one is used otherwise.
        port: Printer port to scan for.
        logger: The logger to use.

    Returns:
        Network printer configs pointing at the relay that found them.

    """
    base_url = (relay_url or DEFAULT_RELAY_URL).rstrip("/")
    if session is None:
        async with aiohttp.ClientSession() as own_session:
            return await discover_network_printers(
                subnet_prefix, base_url, own_session, port=port, logger=logger
            )

    try:
        async with session.post(
            f"{base_url}/discover",
            json={"subnetPrefix": subnet_prefix, "port": port},
            timeout=aiohttp.ClientTimeout(total=DISCOVERY_CLIENT_TIMEOUT),
        ) as response:
            body = await response.json(content_type=None)
            if not response.ok or not isinstance(body, dict):
                logger.warning(
                    "Network discovery rejected by relay: %s %s",
                    response.status,
                    body.get("message") if isinstance(body, dict) else body,
                )
                return []
    except (aiohttp.ClientError, TimeoutError, json.JSONDecodeError, ValueError) as err:
        logger.warning("Network discovery via %s failed: %s", base_url, err)
        return []

    return [
        {
            CONF_TYPE: TransportKind.NETWORK.value,
            CONF_NAME: printer["name"],
            CONF_HOST: printer["host"],
            CONF_PORT: printer["port"],
            CONF_RELAY_URL: base_url,
        }
        for printer in body.get("printers", [])
    ]
