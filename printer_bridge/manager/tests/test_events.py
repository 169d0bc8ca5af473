"""Tests for the event bus."""

from unittest.mock import MagicMock

from printer_bridge.manager.events import EventBus, PrinterEvent
from printer_bridge.models.enums import PrinterEventType


def test_delivery_in_subscription_order():
    """Observers see events in the order they subscribed."""
    bus = EventBus()
    seen = []
    bus.subscribe(lambda event: seen.append(("first", event.type)))
    bus.subscribe(lambda event: seen.append(("second", event.type)))

    bus.emit(PrinterEvent(PrinterEventType.ACTIVE_CHANGED, "p1"))

    assert seen == [
        ("first", PrinterEventType.ACTIVE_CHANGED),
        ("second", PrinterEventType.ACTIVE_CHANGED),
    ]


def test_unsubscribe():
    """An unsubscribed observer receives nothing more."""
    bus = EventBus()
    observer = MagicMock()
    unsubscribe = bus.subscribe(observer)
    assert len(bus) == 1

    unsubscribe()
    unsubscribe()
    bus.emit(PrinterEvent(PrinterEventType.JOBS_CLEARED))

    observer.assert_not_called()
    assert len(bus) == 0


def test_failing_observer_does_not_stop_delivery():
    """An observer that raises is logged and the rest still run."""
    logger = MagicMock()
    bus = EventBus(logger=logger)
    after = MagicMock()
    bus.subscribe(MagicMock(side_effect=RuntimeError("boom")))
    bus.subscribe(after)

    event = PrinterEvent(PrinterEventType.JOB_ADDED, "p1", "job_1", {"size": 3})
    bus.emit(event)

    after.assert_called_once_with(event)
    logger.exception.assert_called_once()
