"""
Unit tests for per-agent fan-out channels.
"""

import asyncio
import pytest

from teamctl.communication.broadcast import (
    BroadcastChannel,
    ChannelRegistry,
    SubscriptionClosed,
)


@pytest.mark.unit
class TestBroadcastChannel:
    """Tests for BroadcastChannel and Subscription."""

    @pytest.mark.asyncio
    async def test_every_subscriber_receives_every_item(self):
        channel = BroadcastChannel("alice")
        first, second = channel.subscribe(), channel.subscribe()

        assert channel.publish("one") == 2
        channel.publish("two")

        assert [await first.get(), await first.get()] == ["one", "two"]
        assert [await second.get(), await second.get()] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_late_subscriber_sees_only_new_items(self):
        channel = BroadcastChannel("alice")
        channel.publish("before")
        late = channel.subscribe()
        channel.publish("after")

        assert await late.get() == "after"
        assert late.get_nowait() is None

    @pytest.mark.asyncio
    async def test_get_waits_for_publish(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()

        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        channel.publish("wake")
        assert await asyncio.wait_for(waiter, timeout=1.0) == "wake"

    def test_overflow_drops_oldest(self):
        channel = BroadcastChannel("alice", capacity=3)
        subscription = channel.subscribe()
        for i in range(5):
            channel.publish(i)

        assert subscription.pending() == 3
        assert subscription.dropped == 2
        assert [subscription.get_nowait() for _ in range(3)] == [2, 3, 4]

    def test_publish_without_subscribers(self):
        assert BroadcastChannel("alice").publish("nobody listening") == 0

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        subscription.close()

        assert subscription.closed
        assert channel.subscriber_count() == 0
        with pytest.raises(SubscriptionClosed):
            await subscription.get()

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_get(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0.01)

        channel.close()
        with pytest.raises(SubscriptionClosed):
            await asyncio.wait_for(waiter, timeout=1.0)

    @pytest.mark.asyncio
    async def test_iteration_drains_backlog_then_stops(self):
        channel = BroadcastChannel("alice")
        subscription = channel.subscribe()
        channel.publish("a")
        channel.publish("b")
        subscription.close()

        received = [item async for item in subscription]
        assert received == ["a", "b"]


@pytest.mark.unit
class TestChannelRegistry:
    """Tests for ChannelRegistry."""

    def test_get_or_create_reuses_channels(self):
        registry = ChannelRegistry(capacity=8)
        channel = registry.get_or_create("alice")
        assert registry.get_or_create("alice") is channel
        assert channel.capacity == 8
        assert registry.names() == ["alice"]

    def test_close_all(self):
        registry = ChannelRegistry()
        subscription = registry.get_or_create("alice").subscribe()
        registry.close_all()

        assert subscription.closed
        assert registry.names() == []
