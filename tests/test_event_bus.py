"""Tests for backend.engine.event_bus: background detection queue."""

from __future__ import annotations

import asyncio
from collections import Counter

import pytest

from backend.engine.event_bus import EventBus
from backend.models.log import LogEvent, LogLevel


def _failed_login(ip: str = "203.0.113.42", **overrides) -> LogEvent:
    defaults = dict(
        level=LogLevel.WARNING,
        source="security",
        ip_address=ip,
        event_type="failed_login",
        message=f"Failed login attempt from {ip}",
    )
    defaults.update(overrides)
    return LogEvent(**defaults)


def _burst(n: int) -> list[LogEvent]:
    return [_failed_login(f"198.51.100.{i}") for i in range(n)]


class Recorder:
    def __init__(self) -> None:
        self.seen: list[LogEvent] = []

    async def __call__(self, event: LogEvent) -> None:
        self.seen.append(event)

    @property
    def ips(self) -> list[str | None]:
        return [e.ip_address for e in self.seen]


# ── dispatch ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_published_log_reaches_handler():
    bus = EventBus()
    recorder = Recorder()
    bus.subscribe(recorder)
    await bus.start()

    event = _failed_login()
    assert await bus.publish(event) is True
    await asyncio.sleep(0.2)
    await bus.stop()

    assert [e.id for e in recorder.seen] == [event.id]


@pytest.mark.asyncio
async def test_single_worker_keeps_arrival_order():
    """A brute-force burst is handled in the order it was ingested."""
    bus = EventBus(workers=1)
    recorder = Recorder()
    bus.subscribe(recorder)
    await bus.start()

    burst = _burst(5)
    for e in burst:
        await bus.publish(e)
    await asyncio.sleep(0.3)
    await bus.stop()

    assert recorder.ips == [e.ip_address for e in burst]


@pytest.mark.asyncio
async def test_worker_pool_dispatches_each_log_once_per_handler():
    bus = EventBus(workers=4)
    detection = Recorder()
    audit = Recorder()
    bus.subscribe(detection)
    bus.subscribe(audit)
    await bus.start()

    burst = _burst(20)
    for e in burst:
        await bus.publish(e)
    await bus.stop()

    expected = Counter(e.id for e in burst)
    assert Counter(e.id for e in detection.seen) == expected
    assert Counter(e.id for e in audit.seen) == expected


@pytest.mark.asyncio
async def test_slow_detection_does_not_hold_up_other_logs():
    """While one log waits on the remote scorer, the next is handled by another worker."""
    bus = EventBus(workers=2)
    scorer_reply = asyncio.Event()
    finished: list[str] = []

    async def handler(event: LogEvent) -> None:
        if event.level is LogLevel.CRITICAL:
            await scorer_reply.wait()
        finished.append(event.event_type)

    bus.subscribe(handler)
    await bus.start()

    await bus.publish(
        _failed_login(
            level=LogLevel.CRITICAL,
            event_type="privilege_escalation",
            message="sudo by www-data",
        )
    )
    await bus.publish(_failed_login())
    await asyncio.sleep(0.2)

    assert finished == ["failed_login"]
    scorer_reply.set()
    await bus.stop()
    assert finished == ["failed_login", "privilege_escalation"]


@pytest.mark.asyncio
async def test_unsubscribed_handler_sees_nothing_more():
    bus = EventBus()
    recorder = Recorder()
    bus.subscribe(recorder)
    await bus.start()

    await bus.publish(_failed_login("203.0.113.1"))
    await asyncio.sleep(0.2)
    bus.unsubscribe(recorder)
    await bus.publish(_failed_login("203.0.113.2"))
    await asyncio.sleep(0.2)
    await bus.stop()

    assert recorder.ips == ["203.0.113.1"]


@pytest.mark.asyncio
async def test_handler_return_value_is_ignored():
    bus = EventBus()

    async def returns_alerts(event: LogEvent) -> list[str]:
        return ["alert"]

    bus.subscribe(returns_alerts)
    await bus.start()
    await bus.publish(_failed_login())
    await bus.stop()

    assert bus.pending == 0


# ── failure isolation ───────────────────────────────────


@pytest.mark.asyncio
async def test_crashing_handler_does_not_starve_the_rest():
    bus = EventBus(workers=2)
    recorder = Recorder()

    async def broken(event: LogEvent) -> None:
        raise RuntimeError("alert store unavailable")

    bus.subscribe(broken)
    bus.subscribe(recorder)
    await bus.start()

    for e in _burst(3):
        await bus.publish(e)
    await bus.stop()

    assert len(recorder.seen) == 3


# ── bounded queue ───────────────────────────────────────


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_waiting():
    bus = EventBus(maxsize=2)

    first, second, third = _burst(3)
    assert await bus.publish(first) is True
    assert await bus.publish(second) is True
    assert await asyncio.wait_for(bus.publish(third), timeout=0.5) is False
    assert bus.pending == 2


# ── lifecycle ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_stop_idempotent():
    bus = EventBus(workers=3)
    await bus.start()
    await bus.start()
    assert bus.running is True
    assert len(bus._consumer_tasks) == 3

    await bus.stop()
    await bus.stop()
    assert bus.running is False


@pytest.mark.asyncio
async def test_logs_queued_before_start_are_drained_on_stop():
    bus = EventBus()
    recorder = Recorder()
    bus.subscribe(recorder)

    # stored while the consumers were not running yet
    for e in _burst(3):
        await bus.publish(e)
    assert bus.pending == 3

    bus._running = True
    await bus.stop()

    assert len(recorder.seen) == 3
    assert bus.pending == 0


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_detection():
    bus = EventBus()
    done: list[str] = []

    async def handler(event: LogEvent) -> None:
        await asyncio.sleep(0.2)
        done.append(event.id)

    bus.subscribe(handler)
    await bus.start()
    event = _failed_login()
    await bus.publish(event)
    await asyncio.sleep(0.05)

    await bus.stop()
    assert done == [event.id]
    assert bus._consumer_tasks == []


def test_introspection_counts():
    bus = EventBus()
    assert bus.subscriber_count == 0
    assert bus.pending == 0

    bus.subscribe(Recorder())
    bus._queue.put_nowait(_failed_login())

    assert bus.subscriber_count == 1
    assert bus.pending == 1
