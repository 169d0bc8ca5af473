"""
Connection registry.

Owns the set of printer identities, their persisted configuration and their
live connection state. At most one transport session exists per identity.
"""

from __future__ import annotations

import asyncio
import secrets
import threading
import time
from functools import partial
from typing import TYPE_CHECKING, Any

import voluptuous as vol

from printer_bridge.const import CONF_TYPE, LOGGER
from printer_bridge.exceptions import PrinterConnectionError, RegistryError
from printer_bridge.models.enums import (
    ConnectionErrorKind,
    ConnectionStatus,
    PrinterEventType,
    RegistryErrorKind,
    TransportKind,
)
from printer_bridge.models.printer import (
    ConnectionState,
    PrinterIdentity,
    parse_transport_config,
)
from printer_bridge.transport import create_driver

from .events import EventBus, PrinterEvent
from .storage import MemoryPrinterStore

if TYPE_CHECKING:
    from collections.abc import Callable

    import aiohttp

    from printer_bridge.transport import TransportDriver

    from .storage import PrinterStore

_TRANSITIONS: dict[ConnectionStatus, tuple[ConnectionStatus, ...]] = {
    ConnectionStatus.DISCONNECTED: (ConnectionStatus.CONNECTING,),
    ConnectionStatus.CONNECTING: (ConnectionStatus.CONNECTED, ConnectionStatus.ERROR),
    ConnectionStatus.CONNECTED: (ConnectionStatus.DISCONNECTED,),
    ConnectionStatus.ERROR: (ConnectionStatus.DISCONNECTED,),
}


class ConnectionRegistry:
    """
    Registry of printer identities and their transport sessions.

    Arguments:
        store: Persistence for the identity set. Defaults to an in-memory store.
        events: Bus receiving ``identities_changed``, ``state_changed`` and
            ``active_changed`` notifications.
        driver_factory: Builds a driver for an identity. Defaults to
            ``create_driver``.
        session: Shared aiohttp session handed to the HTTP based drivers.
        logger: The logger to use.

    """

    def __init__(
        self,
        store: PrinterStore | None = None,
        events: EventBus | None = None,
        driver_factory: Callable[[PrinterIdentity], TransportDriver] | None = None,
        session: aiohttp.ClientSession | None = None,
        logger: Any = LOGGER,
    ) -> None:
        """Initialize the registry and load the persisted identities."""
        self.logger = logger
        self.store: PrinterStore = store if store is not None else MemoryPrinterStore()
        self.events = events if events is not None else EventBus(logger)
        self._driver_factory = driver_factory or partial(
            create_driver, session=session, logger=logger
        )
        self._identities: dict[str, PrinterIdentity] = {}
        self._states: dict[str, ConnectionState] = {}
        self._sessions: dict[str, TransportDriver] = {}
        self._pending: dict[str, asyncio.Task[ConnectionState]] = {}
        self._teardown_locks: dict[str, asyncio.Lock] = {}
        self._save_lock = threading.Lock()
        self._issued_ids: set[str] = set()
        self._active_id: str | None = None
        self._load()

    def _load(self) -> None:
        for identity in self.store.load():
            if identity.id in self._identities:
                self.logger.warning("Duplicate printer id %s in store, skipping", identity.id)
                continue
            self._identities[identity.id] = identity
            self._states[identity.id] = ConnectionState()
            self._issued_ids.add(identity.id)
        if self._identities:
            self.logger.debug("Loaded %d printers", len(self._identities))

    def _save(self) -> None:
        # Snapshot under the lock: the last write holds the newest identity set.
        with self._save_lock:
            try:
                self.store.save(list(self._identities.values()))
            except OSError:
                self.logger.exception("Failed to save printers")

    async def _save_in_executor(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._save)

    def _teardown_lock(self, printer_id: str) -> asyncio.Lock:
        return self._teardown_locks.setdefault(printer_id, asyncio.Lock())

    def _emit(
        self,
        event_type: PrinterEventType,
        printer_id: str | None = None,
        **data: Any,
    ) -> None:
        self.events.emit(PrinterEvent(type=event_type, printer_id=printer_id, data=data))

    def _new_id(self, kind: TransportKind) -> str:
        while True:
            printer_id = f"{kind.value}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
            if printer_id not in self._issued_ids:
                return printer_id

    def _require(self, printer_id: str) -> PrinterIdentity:
        identity = self._identities.get(printer_id)
        if identity is None:
            raise RegistryError(RegistryErrorKind.NOT_FOUND, f"Unknown printer {printer_id}")
        return identity

    def _transition(
        self,
        printer_id: str,
        status: ConnectionStatus,
        message: str,
        error_kind: ConnectionErrorKind | None = None,
    ) -> ConnectionState:
        current = self._states[printer_id].status
        if status not in _TRANSITIONS[current]:
            msg = f"Invalid state transition for {printer_id}: {current.value} -> {status.value}"
            raise RuntimeError(msg)
        state = ConnectionState(status=status, message=message, error_kind=error_kind)
        self._states[printer_id] = state
        self.logger.debug("Printer %s is %s: %s", printer_id, status.value, message)
        self._emit(PrinterEventType.STATE_CHANGED, printer_id, **state.to_dict())
        return state

    # Identity management

    def register(self, config: dict[str, Any], printer_id: str | None = None) -> str:
        """
        Add a printer identity.

        Arguments:
            config: Flat mapping with ``type``, optional ``name``, ``paper_width``,
                ``model`` and the transport fields of that type.
            printer_id: Explicit id, used when importing identities.

        Returns:
            The id of the new identity.

        Raises:
            RegistryError: INVALID_CONFIG if the config does not validate,
                ALREADY_EXISTS if ``printer_id`` is or was in use.

        """
        kind = TransportKind.from_value(config.get(CONF_TYPE))
        if kind is None:
            raise RegistryError(
                RegistryErrorKind.INVALID_CONFIG,
                f"Unknown transport type: {config.get(CONF_TYPE)!r}",
            )
        if printer_id is not None and printer_id in self._issued_ids:
            raise RegistryError(
                RegistryErrorKind.ALREADY_EXISTS, f"Printer id {printer_id} is already in use"
            )

        new_id = printer_id or self._new_id(kind)
        try:
            identity = PrinterIdentity.from_dict(config, printer_id=new_id)
        except vol.Invalid as err:
            raise RegistryError(RegistryErrorKind.INVALID_CONFIG, str(err)) from err

        self._identities[new_id] = identity
        self._states[new_id] = ConnectionState()
        self._issued_ids.add(new_id)
        self._save()
        self.logger.info("Registered %s printer %s (%s)", kind.value, identity.name, new_id)
        self._emit(PrinterEventType.IDENTITIES_CHANGED, new_id, action="added")
        return new_id

    def update(
        self,
        printer_id: str,
        *,
        name: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> PrinterIdentity:
        """
        Change the display name and/or transport config of an identity.

        The transport config of a printer can only change while it is
        disconnected.

        Raises:
            RegistryError: NOT_FOUND for an unknown id, INVALID_CONFIG if the new
                values do not validate or the printer is not disconnected.

        """
        identity = self._require(printer_id)
        if name is not None and not name.strip():
            raise RegistryError(RegistryErrorKind.INVALID_CONFIG, "Printer name must not be empty")

        new_config = None
        if config is not None:
            kind = TransportKind.from_value(config.get(CONF_TYPE)) or identity.transport_kind
            try:
                new_config = parse_transport_config(kind, config)
            except vol.Invalid as err:
                raise RegistryError(RegistryErrorKind.INVALID_CONFIG, str(err)) from err
            state = self._states[printer_id]
            if new_config != identity.config and state.status is not ConnectionStatus.DISCONNECTED:
                raise RegistryError(
                    RegistryErrorKind.INVALID_CONFIG,
                    f"Printer {printer_id} must be disconnected to change its transport",
                )

        updated = identity.with_updates(
            name=name.strip() if name is not None else None, config=new_config
        )
        self._identities[printer_id] = updated
        self._save()
        self._emit(PrinterEventType.IDENTITIES_CHANGED, printer_id, action="updated")
        return updated

    async def unregister(self, printer_id: str) -> None:
        """
        Remove an identity, disconnecting it first.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        self._require(printer_id)
        await self.disconnect(printer_id)

        self._identities.pop(printer_id, None)
        self._states.pop(printer_id, None)
        self._teardown_locks.pop(printer_id, None)
        self._save()
        self.logger.info("Removed printer %s", printer_id)
        self._emit(PrinterEventType.IDENTITIES_CHANGED, printer_id, action="removed")
        if self._active_id == printer_id:
            self._active_id = None
            self._emit(PrinterEventType.ACTIVE_CHANGED, None)

    def set_active(self, printer_id: str | None) -> None:
        """
        Select the default printer, or clear the selection with None.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        if printer_id is not None:
            self._require(printer_id)
        if printer_id == self._active_id:
            return
        self._active_id = printer_id
        self._emit(PrinterEventType.ACTIVE_CHANGED, printer_id)

    # Connection management

    async def connect(self, printer_id: str) -> ConnectionState:
        """
        Open a transport session for an identity.

        A connect for an identity that is already connecting awaits the pending
        attempt. Failures are reported in the returned state, never raised.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        identity = self._require(printer_id)
        state = self._states[printer_id]
        if state.is_connected:
            return state

        task = self._pending.get(printer_id)
        if task is None:
            task = asyncio.create_task(self._connect(identity))
            self._pending[printer_id] = task
        return await asyncio.shield(task)

    async def _connect(self, identity: PrinterIdentity) -> ConnectionState:
        printer_id = identity.id
        try:
            if self._states[printer_id].status is ConnectionStatus.ERROR:
                self._transition(printer_id, ConnectionStatus.DISCONNECTED, "Not connected")
            self._transition(printer_id, ConnectionStatus.CONNECTING, "Connecting...")

            driver = self._driver_factory(identity)
            try:
                await driver.connect()
            except PrinterConnectionError as err:
                self.logger.warning("Failed to connect printer %s: %s", printer_id, err.status_text)
                await self._release(printer_id, driver)
                return self._transition(
                    printer_id, ConnectionStatus.ERROR, err.message, err.kind
                )
            except Exception as err:
                self.logger.exception("Unexpected error connecting printer %s", printer_id)
                await self._release(printer_id, driver)
                return self._transition(
                    printer_id,
                    ConnectionStatus.ERROR,
                    str(err) or type(err).__name__,
                    ConnectionErrorKind.UNAVAILABLE,
                )

            self._sessions[printer_id] = driver
            identity.touch()
            await self._save_in_executor()
            self.logger.info("Printer %s connected: %s", printer_id, driver.status)
            return self._transition(printer_id, ConnectionStatus.CONNECTED, driver.status)
        finally:
            self._pending.pop(printer_id, None)

    async def _release(self, printer_id: str, driver: TransportDriver) -> None:
        try:
            await driver.disconnect()
        except Exception:
            self.logger.exception("Error releasing transport of printer %s", printer_id)

    async def disconnect(self, printer_id: str) -> ConnectionState:
        """
        Close the transport session of an identity.

        Idempotent: disconnecting a disconnected printer returns its state.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        self._require(printer_id)
        if (task := self._pending.get(printer_id)) is not None:
            await asyncio.shield(task)

        async with self._teardown_lock(printer_id):
            state = self._states.get(printer_id)
            if state is None or state.status is ConnectionStatus.DISCONNECTED:
                return state or ConnectionState()
            if state.status is ConnectionStatus.ERROR:
                return self._transition(printer_id, ConnectionStatus.DISCONNECTED, "Not connected")

            driver = self._sessions.pop(printer_id, None)
            if driver is not None:
                await self._release(printer_id, driver)
            self.logger.info("Printer %s disconnected", printer_id)
            return self._transition(printer_id, ConnectionStatus.DISCONNECTED, "Disconnected")

    async def disconnect_all(self) -> None:
        """Disconnect every identity."""
        await asyncio.gather(*(self.disconnect(printer_id) for printer_id in list(self._identities)))

    async def mark_lost(self, printer_id: str, reason: str) -> None:
        """Record that a connected session dropped on its own."""
        async with self._teardown_lock(printer_id):
            state = self._states.get(printer_id)
            if state is None or not state.is_connected:
                return
            driver = self._sessions.pop(printer_id, None)
            if driver is not None:
                await self._release(printer_id, driver)
            self.logger.warning("Printer %s lost its connection: %s", printer_id, reason)
            self._transition(
                printer_id, ConnectionStatus.DISCONNECTED, f"Connection lost: {reason}"
            )

    async def test_printer(self, printer_id: str) -> bool:
        """Connect the printer if needed and report whether it is usable."""
        state = await self.connect(printer_id)
        driver = self._sessions.get(printer_id)
        return state.is_connected and driver is not None and driver.is_connected

    # Queries

    def get(self, printer_id: str) -> PrinterIdentity:
        """
        Return an identity.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        return self._require(printer_id)

    def __contains__(self, printer_id: object) -> bool:
        return printer_id in self._identities

    @property
    def printers(self) -> list[PrinterIdentity]:
        """Return every registered identity."""
        return list(self._identities.values())

    @property
    def active_id(self) -> str | None:
        """Return the id of the default printer."""
        return self._active_id

    @property
    def active(self) -> PrinterIdentity | None:
        """Return the default printer."""
        return self._identities.get(self._active_id) if self._active_id else None

    def state(self, printer_id: str) -> ConnectionState:
        """
        Return the connection state of an identity.

        Raises:
            RegistryError: NOT_FOUND for an unknown id.

        """
        self._require(printer_id)
        return self._states[printer_id]

    def session(self, printer_id: str) -> TransportDriver | None:
        """Return the live driver of a connected identity."""
        return self._sessions.get(printer_id)

    def status_text(self, printer_id: str) -> str:
        """Return the driver status of a printer, or "Not connected"."""
        driver = self._sessions.get(printer_id)
        return driver.status if driver is not None else "Not connected"

    async def touch(self, printer_id: str) -> None:
        """Refresh ``last_used`` of an identity and persist it off the event loop."""
        if (identity := self._identities.get(printer_id)) is not None:
            identity.touch()
            await self._save_in_executor()
