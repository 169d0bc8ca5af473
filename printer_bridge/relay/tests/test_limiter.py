"""Tests for relay admission control."""

import asyncio

import pytest

from printer_bridge.exceptions import RelayBusyError
from printer_bridge.relay.limiter import SessionLimiter


async def hold(limiter, release):
    async with limiter.slot():
        await release.wait()


@pytest.mark.anyio
async def test_sessions_queue_then_reject():
    """Slots fill first, then the queue, then callers are turned away."""
    limiter = SessionLimiter(max_sessions=2, max_waiting=1)
    release = asyncio.Event()
    holders = [asyncio.create_task(hold(limiter, release)) for _ in range(3)]
    await asyncio.sleep(0)

    snapshot = limiter.snapshot()
    assert snapshot.in_flight_sessions == 2
    assert snapshot.waiting_sessions == 1

    with pytest.raises(RelayBusyError):
        async with limiter.slot():
            pass

    release.set()
    await asyncio.gather(*holders)

    snapshot = limiter.snapshot()
    assert snapshot.in_flight_sessions == 0
    assert snapshot.waiting_sessions == 0
    assert snapshot.total_sessions == 3
    assert snapshot.max_sessions == 2


@pytest.mark.anyio
async def test_slot_released_on_error():
    limiter = SessionLimiter(max_sessions=1, max_waiting=0)
    with pytest.raises(RuntimeError):
        async with limiter.slot():
            raise RuntimeError("session failed")

    async with limiter.slot():
        assert limiter.in_flight == 1
    assert limiter.in_flight == 0


@pytest.mark.anyio
async def test_cancelled_waiter_leaves_queue():
    """A caller cancelled while queued frees its place in the queue."""
    limiter = SessionLimiter(max_sessions=1, max_waiting=1)
    release = asyncio.Event()
    running = asyncio.create_task(hold(limiter, release))
    queued = asyncio.create_task(hold(limiter, release))
    await asyncio.sleep(0)
    assert limiter.waiting == 1

    queued.cancel()
    with pytest.raises(asyncio.CancelledError):
        await queued
    assert limiter.waiting == 0

    release.set()
    await running
    assert limiter.total == 1


def test_requires_a_session():
    with pytest.raises(ValueError, match="at least 1"):
        SessionLimiter(max_sessions=0)


def test_status_document():
    status = SessionLimiter(max_sessions=4).snapshot().to_dict()
    assert status["status"] == "running"
    assert status["maxSessions"] == 4
    assert status["inFlightSessions"] == 0
