"""Unit tests for the in-process WebSocket broadcast manager."""

import pytest
from pytest_mock import MockerFixture
from starlette.websockets import WebSocketState

from src.services.realtime import BroadcastManager

TOPIC = "orders:tenant-1"


def socket(mocker: MockerFixture):
    ws = mocker.MagicMock()
    ws.application_state = WebSocketState.CONNECTED
    ws.client_state = WebSocketState.CONNECTED
    ws.send_json = mocker.AsyncMock()
    return ws


@pytest.mark.unit
class TestBroadcast:
    async def test_excluded_socket_is_skipped(self, mocker: MockerFixture) -> None:
        manager = BroadcastManager()
        sender, listener = socket(mocker), socket(mocker)
        await manager.connect(TOPIC, sender)
        await manager.connect(TOPIC, listener)

        await manager.broadcast(TOPIC, {"event": "order.created"}, exclude=sender)

        listener.send_json.assert_awaited_once_with({"event": "order.created"})
        sender.send_json.assert_not_awaited()

    async def test_failed_send_drops_subscriber(self, mocker: MockerFixture) -> None:
        manager = BroadcastManager()
        broken, healthy = socket(mocker), socket(mocker)
        broken.send_json.side_effect = RuntimeError("socket closed")
        await manager.connect(TOPIC, broken)
        await manager.connect(TOPIC, healthy)

        await manager.broadcast(TOPIC, {"event": "ping"})

        assert manager.subscriber_count(TOPIC) == 1
        healthy.send_json.assert_awaited_once()

    async def test_disconnected_socket_is_dropped_unsent(self, mocker: MockerFixture) -> None:
        manager = BroadcastManager()
        gone = socket(mocker)
        gone.client_state = WebSocketState.DISCONNECTED
        await manager.connect(TOPIC, gone)

        await manager.broadcast(TOPIC, {"event": "ping"})

        gone.send_json.assert_not_awaited()
        assert manager.subscriber_count(TOPIC) == 0

    async def test_send_runs_outside_topic_lock(self, mocker: MockerFixture) -> None:
        """Subscribers can join while a send is still in flight."""
        manager = BroadcastManager()
        lock_held = []
        ws = socket(mocker)

        async def send_json(message: dict) -> None:
            lock_held.append(manager._topic_lock(TOPIC).locked())
            await manager.connect(TOPIC, socket(mocker))

        ws.send_json = mocker.AsyncMock(side_effect=send_json)
        await manager.connect(TOPIC, ws)

        await manager.broadcast(TOPIC, {"event": "ping"})

        assert lock_held == [False]
        assert manager.subscriber_count(TOPIC) == 2
