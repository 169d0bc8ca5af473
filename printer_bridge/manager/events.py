"""Synchronous in-process notifications for registry and dispatcher changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from printer_bridge.const import LOGGER

if TYPE_CHECKING:
    from collections.abc import Callable

    from printer_bridge.models.enums import PrinterEventType


@dataclass(frozen=True)
class PrinterEvent:
    """A change notification."""

    type: PrinterEventType
    printer_id: str | None = None
    job_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """
    Delivers events to observers in subscription order.

    Delivery is synchronous; an observer that raises is logged and does not
    prevent delivery to the others.
    """

    def __init__(self, logger: Any = LOGGER) -> None:
        """Initialize an empty bus."""
        self.logger = logger
        self._observers: list[Callable[[PrinterEvent], None]] = []

    def subscribe(self, observer: Callable[[PrinterEvent], None]) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            A callable that removes the observer again.

        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: PrinterEvent) -> None:
        """Deliver ``event`` to every current observer."""
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                self.logger.exception("Observer failed handling %s", event.type.value)

    def __len__(self) -> int:
        return len(self._observers)
