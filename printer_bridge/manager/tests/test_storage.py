"""Tests for identity persistence."""

import json
from pathlib import Path
from unittest.mock import MagicMock

from printer_bridge.manager.storage import JsonPrinterStore, MemoryPrinterStore
from printer_bridge.models.printer import NetworkConfig, PrinterIdentity, UsbConfig


def identities():
    return [
        PrinterIdentity(id="usb_1", name="Counter", config=UsbConfig(vendor_id=0x04B8)),
        PrinterIdentity(
            id="network_1",
            name="Kitchen",
            config=NetworkConfig(host="192.168.1.50", port=9100),
            paper_width=58,
        ),
    ]


def test_missing_file_is_empty(tmp_path: Path):
    """A store that was never saved has no printers."""
    assert JsonPrinterStore(tmp_path / "printers.json").load() == []


def test_save_and_load(tmp_path: Path):
    """Saved identities load back equal, and the document is versioned."""
    path = tmp_path / "nested" / "printers.json"
    store = JsonPrinterStore(path)
    store.save(identities())

    document = json.loads(path.read_text())
    assert document["version"] == 1
    assert [record["id"] for record in document["printers"]] == ["usb_1", "network_1"]
    assert "status" not in document["printers"][0]

    assert JsonPrinterStore(path).load() == identities()
    assert list(path.parent.iterdir()) == [path]


def test_corrupt_file(tmp_path: Path):
    """A corrupt document is logged and treated as empty."""
    path = tmp_path / "printers.json"
    path.write_text("{not json")
    logger = MagicMock()

    assert JsonPrinterStore(path, logger=logger).load() == []
    logger.warning.assert_called_once()


def test_unknown_layout(tmp_path: Path):
    path = tmp_path / "printers.json"
    path.write_text(json.dumps(["usb_1"]))
    assert JsonPrinterStore(path, logger=MagicMock()).load() == []


def test_invalid_records_are_skipped(tmp_path: Path):
    """Records that fail validation are dropped, the rest load."""
    path = tmp_path / "printers.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "printers": [
                    {"id": "network_1", "type": "network", "host": "10.0.0.9", "port": 9100},
                    {"id": "broken", "type": "network"},
                    {"id": "serial_1", "type": "serial"},
                    "not a record",
                ],
            }
        )
    )
    logger = MagicMock()

    loaded = JsonPrinterStore(path, logger=logger).load()

    assert [identity.id for identity in loaded] == ["network_1"]
    assert logger.warning.call_count == 3


def test_memory_store():
    """The memory store round-trips records and counts saves."""
    store = MemoryPrinterStore()
    store.save(identities())
    assert store.save_count == 1
    assert store.load() == identities()
