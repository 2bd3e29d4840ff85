from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from starlette.websockets import WebSocket, WebSocketState

from backend.models import AlertRecord, BroadcastMessage, BroadcastType, LogEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class SubscriberTransport(Protocol):
    """Connection handle supplied by the network layer."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, data: bytes) -> None: ...


class WebSocketTransport:
    """Adapts a Starlette WebSocket to SubscriberTransport."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, data: bytes) -> None:
        await self.websocket.send_text(data.decode())

    async def close(self) -> None:
        if self.is_open:
            await self.websocket.close()


class SubscriberRegistry:
    """Live subscriber connections, keyed by a generated id.

    Broadcast works on a snapshot of the map and writes to every subscriber
    concurrently. A subscriber that is closed, errors, or doesn't accept the
    write within ``send_timeout`` is evicted and its connection closed.
    Nothing is retried or queued.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._subscribers: dict[str, SubscriberTransport] = {}

    # ── registration ────────────────────────────────────

    def register(self, transport: SubscriberTransport) -> str:
        subscriber_id = uuid.uuid4().hex
        self._subscribers[subscriber_id] = transport
        logger.info("Subscriber %s connected (%d live)", subscriber_id, len(self._subscribers))
        return subscriber_id

    def unregister(self, subscriber_id: str) -> bool:
        removed = self._subscribers.pop(subscriber_id, None) is not None
        if removed:
            logger.info("Subscriber %s closed (%d live)", subscriber_id, len(self._subscribers))
        return removed

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._subscribers

    @property
    def count(self) -> int:
        return len(self._subscribers)

    # ── broadcast ───────────────────────────────────────

    async def broadcast(self, type: BroadcastType, data: dict[str, Any]) -> int:
        """Send one message to every open subscriber. Returns the delivery count."""
        payload = BroadcastMessage(type=type, data=data).encode()
        snapshot = list(self._subscribers.items())
        if not snapshot:
            return 0
        results = await asyncio.gather(
            *(self._deliver(sid, transport, payload) for sid, transport in snapshot),
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)

    async def broadcast_log_created(self, event: LogEvent) -> int:
        return await self.broadcast(BroadcastType.LOG_CREATED, event.model_dump(mode="json"))

    async def broadcast_alert_created(self, alert: AlertRecord) -> int:
        return await self.broadcast(BroadcastType.ALERT_CREATED, alert.model_dump(mode="json"))

    async def _deliver(self, subscriber_id: str, transport: SubscriberTransport, payload: bytes) -> bool:
        # unregistered after the snapshot was taken
        if subscriber_id not in self._subscribers:
            return False
        if not transport.is_open:
            await self._evict(subscriber_id, transport)
            return False
        try:
            async with asyncio.timeout(self.send_timeout):
                await transport.send(payload)
        except TimeoutError:
            logger.warning("Subscriber %s write timed out, evicting", subscriber_id)
            await self._evict(subscriber_id, transport)
            return False
        except Exception as e:
            logger.warning("Subscriber %s write failed (%s), evicting", subscriber_id, e)
            await self._evict(subscriber_id, transport)
            return False
        return True

    async def _evict(self, subscriber_id: str, transport: SubscriberTransport) -> None:
        # the peer must see a close, otherwise it never reconnects
        self.unregister(subscriber_id)
        await self._close(subscriber_id, transport)

    async def _close(self, subscriber_id: str, transport: SubscriberTransport) -> None:
        close = getattr(transport, "close", None)
        if close is None:
            return
        try:
            async with asyncio.timeout(self.send_timeout):
                await close()
        except Exception:
            logger.debug("Error closing subscriber %s", subscriber_id, exc_info=True)

    # ── shutdown ────────────────────────────────────────

    async def close_all(self) -> None:
        snapshot = list(self._subscribers.items())
        self._subscribers.clear()
        for subscriber_id, transport in snapshot:
            await self._close(subscriber_id, transport)
        if snapshot:
            logger.info("Closed %d subscriber(s)", len(snapshot))
