"""Tests for backend.engine.fanout: SubscriberRegistry broadcast semantics."""

from __future__ import annotations

import asyncio
import json

import pytest

from backend.engine.fanout import SubscriberRegistry, SubscriberTransport
from backend.models import (
    AlertRecord,
    AlertSeverity,
    BroadcastType,
    LogEvent,
    LogLevel,
)


class FakeTransport:
    def __init__(self, open: bool = True, fail: bool = False, delay: float = 0.0) -> None:
        self._open = open
        self.fail = fail
        self.delay = delay
        self.sent: list[dict] = []
        self.closed = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def send(self, data: bytes) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self._open = False
        self.closed = True


def _log() -> LogEvent:
    return LogEvent(
        level=LogLevel.WARNING,
        source="security",
        ip_address="203.0.113.42",
        event_type="failed_login",
        message="Failed login attempt from 203.0.113.42",
    )


def _alert() -> AlertRecord:
    return AlertRecord(
        severity=AlertSeverity.HIGH,
        title="Anomaly Detected: failed_login",
        description="Failed login attempt from 203.0.113.42",
        source="security",
    )


# ── registration ───────────────────────────────────────

class TestRegistration:
    def test_register_returns_unique_ids(self):
        registry = SubscriberRegistry()
        ids = {registry.register(FakeTransport()) for _ in range(20)}
        assert len(ids) == 20
        assert registry.count == 20

    def test_unregister_is_idempotent(self):
        registry = SubscriberRegistry()
        sid = registry.register(FakeTransport())
        assert registry.unregister(sid) is True
        assert registry.unregister(sid) is False
        assert sid not in registry

    def test_fake_transport_satisfies_protocol(self):
        assert isinstance(FakeTransport(), SubscriberTransport)


# ── broadcast ─────────────────────────────────────────

class TestBroadcast:
    @pytest.mark.asyncio
    async def test_wire_shape(self):
        registry = SubscriberRegistry()
        t = FakeTransport()
        registry.register(t)
        log = _log()

        delivered = await registry.broadcast_log_created(log)

        assert delivered == 1
        [msg] = t.sent
        assert set(msg) == {"type", "data", "timestamp"}
        assert msg["type"] == "log_created"
        assert msg["data"]["id"] == log.id
        assert msg["data"]["level"] == "warning"
        assert "T" in msg["timestamp"]  # ISO-8601

    @pytest.mark.asyncio
    async def test_open_subscribers_get_both_messages_in_order(self):
        registry = SubscriberRegistry()
        open_transports = [FakeTransport() for _ in range(3)]
        closed = FakeTransport(open=False)
        for t in open_transports:
            registry.register(t)
        closed_id = registry.register(closed)

        await registry.broadcast_log_created(_log())
        await registry.broadcast_alert_created(_alert())

        for t in open_transports:
            assert [m["type"] for m in t.sent] == ["log_created", "alert_created"]
        assert closed.sent == []
        assert closed_id not in registry
        assert registry.count == 3

    @pytest.mark.asyncio
    async def test_write_failure_evicts_without_affecting_others(self):
        registry = SubscriberRegistry()
        good = FakeTransport()
        bad = FakeTransport(fail=True)
        registry.register(good)
        bad_id = registry.register(bad)

        delivered = await registry.broadcast(BroadcastType.LOG_CREATED, {"id": "x"})

        assert delivered == 1
        assert len(good.sent) == 1
        assert bad_id not in registry
        assert bad.closed is True
        assert good.closed is False

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_block_others(self):
        registry = SubscriberRegistry(send_timeout=0.1)
        fast = FakeTransport()
        slow = FakeTransport(delay=5.0)
        registry.register(fast)
        slow_id = registry.register(slow)

        delivered = await asyncio.wait_for(
            registry.broadcast(BroadcastType.ALERT_CREATED, {"id": "a"}), timeout=2.0
        )

        assert delivered == 1
        assert len(fast.sent) == 1
        assert slow_id not in registry

    @pytest.mark.asyncio
    async def test_timed_out_subscriber_is_closed(self):
        """Eviction closes the connection so the client sees it and can reconnect."""
        registry = SubscriberRegistry(send_timeout=0.05)
        slow = FakeTransport(delay=5.0)
        registry.register(slow)

        await asyncio.wait_for(registry.broadcast_log_created(_log()), timeout=2.0)

        assert registry.count == 0
        assert slow.closed is True

    @pytest.mark.asyncio
    async def test_close_error_on_eviction_is_swallowed(self):
        class BrokenClose(FakeTransport):
            async def close(self) -> None:
                raise RuntimeError("already gone")

        registry = SubscriberRegistry()
        good = FakeTransport()
        registry.register(good)
        registry.register(BrokenClose(fail=True))

        delivered = await registry.broadcast(BroadcastType.LOG_CREATED, {"id": "x"})

        assert delivered == 1
        assert registry.count == 1

    @pytest.mark.asyncio
    async def test_broadcast_with_no_subscribers(self):
        assert await SubscriberRegistry().broadcast(BroadcastType.LOG_CREATED, {}) == 0

    @pytest.mark.asyncio
    async def test_unregister_during_broadcast(self):
        """A subscriber removed mid-broadcast never raises and gets nothing after removal."""
        registry = SubscriberRegistry()
        victim = FakeTransport()

        class UnregisteringTransport(FakeTransport):
            async def send(self, data: bytes) -> None:
                registry.unregister(victim_id)
                await super().send(data)

        first = UnregisteringTransport()
        registry.register(first)
        victim_id = registry.register(victim)

        delivered = await registry.broadcast(BroadcastType.LOG_CREATED, {"n": 1})
        await registry.broadcast(BroadcastType.LOG_CREATED, {"n": 2})

        assert delivered == 1
        assert victim.sent == []
        assert len(first.sent) == 2

    @pytest.mark.asyncio
    async def test_concurrent_register_unregister_and_broadcast(self):
        registry = SubscriberRegistry()
        transports = [FakeTransport(delay=0.01) for _ in range(10)]
        ids = [registry.register(t) for t in transports]

        async def churn() -> None:
            for sid in ids[:5]:
                registry.unregister(sid)
                await asyncio.sleep(0)
            for _ in range(5):
                registry.register(FakeTransport())
                await asyncio.sleep(0)

        await asyncio.gather(
            churn(),
            *(registry.broadcast(BroadcastType.LOG_CREATED, {"n": i}) for i in range(5)),
        )

        assert registry.count == 10
        # removed subscribers never see a message after their removal
        final = await registry.broadcast(BroadcastType.LOG_CREATED, {"n": "last"})
        assert final == 10
        for t in transports[:5]:
            assert all(m["data"]["n"] != "last" for m in t.sent)


# ── shutdown ──────────────────────────────────────────

class TestCloseAll:
    @pytest.mark.asyncio
    async def test_closes_and_clears(self):
        registry = SubscriberRegistry()
        transports = [FakeTransport() for _ in range(3)]
        for t in transports:
            registry.register(t)

        await registry.close_all()

        assert registry.count == 0
        assert all(t.closed for t in transports)
