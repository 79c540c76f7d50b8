"""
Unit tests for the WebSocket forwarder that pushes a teammate's messages.
"""

import asyncio
import pytest

from teamctl.api.websockets.agent_stream import _forward
from teamctl.communication.broadcast import BroadcastChannel
from teamctl.communication.message_types import InboxMessage


class RecordingWebSocket:
    """Collects what the forwarder sends."""

    def __init__(self):
        self.sent = []

    async def send_json(self, payload):
        self.sent.append(payload)


class BrokenWebSocket:
    async def send_json(self, payload):
        raise RuntimeError("socket closed")


@pytest.mark.unit
class TestForward:
    """Tests for _forward."""

    @pytest.mark.asyncio
    async def test_forwards_published_messages(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        websocket = RecordingWebSocket()

        channel.publish(InboxMessage(sender="alice", text="tests pass", summary="done"))
        subscription.close()
        await asyncio.wait_for(_forward(websocket, subscription, "alice"), timeout=2)

        assert len(websocket.sent) == 1
        payload = websocket.sent[0]
        assert payload["type"] == "message"
        assert payload["agent"] == "alice"
        assert payload["message"]["from"] == "alice"
        assert payload["message"]["text"] == "tests pass"
        assert payload["message"]["summary"] == "done"

    @pytest.mark.asyncio
    async def test_forwards_in_publish_order_until_closed(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        websocket = RecordingWebSocket()
        task = asyncio.create_task(_forward(websocket, subscription, "alice"))

        channel.publish(InboxMessage(sender="alice", text="one"))
        channel.publish(InboxMessage(sender="alice", text="two"))
        await asyncio.sleep(0.05)
        subscription.close()
        await asyncio.wait_for(task, timeout=2)

        assert [p["message"]["text"] for p in websocket.sent] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_send_failure_propagates(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        channel.publish(InboxMessage(sender="alice", text="lost"))

        with pytest.raises(RuntimeError, match="socket closed"):
            await asyncio.wait_for(_forward(BrokenWebSocket(), subscription, "alice"), timeout=2)
