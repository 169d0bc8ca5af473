"""Persistence of printer identities."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import voluptuous as vol

from printer_bridge.const import DEFAULT_STORE_PATH, LOGGER, STORE_VERSION
from printer_bridge.models.printer import PrinterIdentity


class PrinterStore(Protocol):
    """Loads and saves the identity set. Connection state is never stored."""

    def load(self) -> list[PrinterIdentity]:
        """Return the stored identities."""
        ...

    def save(self, identities: list[PrinterIdentity]) -> None:
        """Replace the stored identities."""
        ...


class MemoryPrinterStore:
    """Store that keeps records in memory, for tests and ephemeral registries."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self.records: list[dict[str, Any]] = list(records or [])
        self.save_count = 0

    def load(self) -> list[PrinterIdentity]:
        return [PrinterIdentity.from_dict(record) for record in self.records]

    def save(self, identities: list[PrinterIdentity]) -> None:
        self.records = [identity.to_dict() for identity in identities]
        self.save_count += 1


class JsonPrinterStore:
    """
    Stores identities in a JSON document.

    The document has the form ``{"version": 1, "printers": [...]}`` and is
    replaced atomically on every save.
    """

    def __init__(
        self, path: str | os.PathLike[str] = DEFAULT_STORE_PATH, logger: Any = LOGGER
    ) -> None:
        """
        Initialize the store.

        Arguments:
            path: Location of the JSON document.
            logger: The logger to use.

        """
        self.path = Path(path)
        self.logger = logger

    def load(self) -> list[PrinterIdentity]:
        """
        Read identities from disk.

        A missing file yields no identities. A corrupt file, or a record that
        does not validate, is logged and skipped.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as err:
            self.logger.warning("Could not read printer store %s: %s", self.path, err)
            return []

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as err:
            self.logger.warning("Printer store %s is corrupt, starting empty: %s", self.path, err)
            return []

        if not isinstance(document, dict) or not isinstance(document.get("printers"), list):
            self.logger.warning("Printer store %s has an unknown layout, starting empty", self.path)
            return []
        if document.get("version") != STORE_VERSION:
            self.logger.warning(
                "Printer store %s has version %s, expected %s",
                self.path,
                document.get("version"),
                STORE_VERSION,
            )

        identities = []
        for record in document["printers"]:
            try:
                identities.append(PrinterIdentity.from_dict(record))
            except (vol.Invalid, TypeError, ValueError) as err:
                self.logger.warning("Skipping invalid printer record %r: %s", record, err)
        return identities

    def save(self, identities: list[PrinterIdentity]) -> None:
        """Write identities to disk, replacing the previous document atomically."""
        document = {
            "version": STORE_VERSION,
            "printers": [identity.to_dict() for identity in identities],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self.logger.debug("Saved %d printers to %s", len(identities), self.path)
