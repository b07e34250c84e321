from __future__ import annotations

import asyncio

import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from src.schemas.realtime import MachineSnapshot, WsEnvelope

logger = logging.getLogger(__name__)


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - machines:{tenant_id}
      - orders:{tenant_id}
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def machines_topic(self, tenant_id: UUID | str) -> str:
        """Return machine events topic name for tenant."""
        return f"machines:{tenant_id}"

    # PUBLIC_INTERFACE
    def orders_topic(self, tenant_id: UUID | str) -> str:
        """Return order events topic name for tenant."""
        return f"orders:{tenant_id}"

    async def _ensure_topic(self, topic: str) -> None:
        async with self._global_lock:
            if topic not in self._topics:
                self._topics[topic] = set()

    # PUBLIC_INTERFACE
    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """
        Add an accepted websocket to topic subscribers.
        """
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            self._topics[topic].add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            self._topics[topic].discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    async def _send(self, ws: WebSocket, message: dict) -> bool:
        """Send to one subscriber; False means it should be dropped."""
        try:
            if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                return False
            await ws.send_json(message)
        except Exception:
            logger.exception("Failed to send message to websocket; scheduling drop")
            return False
        return True

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict, exclude: Optional[WebSocket] = None) -> None:
        """
        Broadcast a dict message to all subscribers in the topic.
        """
        await self._ensure_topic(topic)
        # The lock only guards the subscriber set; sends run concurrently outside it
        async with self._topic_lock(topic):
            subscribers = [ws for ws in self._topics[topic] if ws is not exclude]

        delivered = await asyncio.gather(*(self._send(ws, message) for ws in subscribers))
        to_drop = [ws for ws, ok in zip(subscribers, delivered) if not ok]
        if to_drop:
            async with self._topic_lock(topic):
                for ws in to_drop:
                    self._topics[topic].discard(ws)

    async def _publish(self, topic: str, envelope: WsEnvelope) -> None:
        # Broadcast problems must never fail the request that triggered them.
        try:
            await self.broadcast(topic, envelope.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to publish %s to topic=%s", envelope.type, topic)

    # PUBLIC_INTERFACE
    async def publish_machine_event(
        self, tenant_id: UUID | str, event_type: str, payload: Dict[str, Any], user_id: Optional[UUID] = None
    ) -> None:
        """Publish a machine.* event (status, error, telemetry) for tenant."""
        env = WsEnvelope(type=event_type, payload=payload, user_id=user_id)
        await self._publish(self.machines_topic(tenant_id), env)

    # PUBLIC_INTERFACE
    async def publish_order_event(
        self, tenant_id: UUID | str, event_type: str, payload: Dict[str, Any], user_id: Optional[UUID] = None
    ) -> None:
        """Publish an order.* event (created, status_changed) for tenant."""
        env = WsEnvelope(type=event_type, payload=payload, user_id=user_id)
        await self._publish(self.orders_topic(tenant_id), env)

    # PUBLIC_INTERFACE
    async def send_machine_snapshot(self, websocket: WebSocket, snapshot: MachineSnapshot) -> None:
        """Send the fleet snapshot to a single freshly connected subscriber."""
        env = WsEnvelope(type="machines.snapshot", payload=snapshot.model_dump(mode="json"))
        await websocket.send_json(env.model_dump(mode="json"))


# Singleton instance
broadcast_manager = BroadcastManager()
