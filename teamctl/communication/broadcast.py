"""
In-process fan-out of mailbox traffic to per-agent subscribers.

The controller's poller publishes every non-approval message it drains onto
the channel of the sending agent. Each subscriber has its own bounded
backlog; when a backlog is full the oldest entry is dropped. Subscribers only
see messages published after they subscribed.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1024


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription is closed."""


class Subscription:
    """One subscriber's view of a BroadcastChannel."""

    def __init__(self, channel: "BroadcastChannel", capacity: int):
        self._channel = channel
        self._backlog: Deque[Any] = deque(maxlen=capacity)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def name(self) -> str:
        return self._channel.name

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, item: Any) -> None:
        if len(self._backlog) == self._backlog.maxlen:
            self.dropped += 1
        self._backlog.append(item)
        self._ready.set()

    def pending(self) -> int:
        return len(self._backlog)

    def get_nowait(self) -> Optional[Any]:
        """Next item, or None if the backlog is empty."""
        if self._backlog:
            return self._backlog.popleft()
        return None

    async def get(self) -> Any:
        """Wait for the next item."""
        while not self._backlog:
            if self._closed:
                raise SubscriptionClosed(self.name)
            self._ready.clear()
            await self._ready.wait()
        return self._backlog.popleft()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._channel._unsubscribe(self)
            self._ready.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration


class BroadcastChannel:
    """Fan-out channel for one agent name."""

    def __init__(self, name: str, capacity: int = DEFAULT_CAPACITY):
        self.name = name
        self.capacity = capacity
        self._subscribers: List[Subscription] = []

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.capacity)
        self._subscribers.append(subscription)
        return subscription

    def publish(self, item: Any) -> int:
        """Deliver ``item`` to every current subscriber; returns how many."""
        for subscription in self._subscribers:
            subscription._deliver(item)
        return len(self._subscribers)

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)


class ChannelRegistry:
    """Agent name -> BroadcastChannel, created lazily. Not thread-safe; the
    controller guards it with its own lock."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._channels: Dict[str, BroadcastChannel] = {}

    def get_or_create(self, name: str) -> BroadcastChannel:
        channel = self._channels.get(name)
        if channel is None:
            channel = BroadcastChannel(name, self.capacity)
            self._channels[name] = channel
            logger.debug(f"Created fan-out channel for {name}")
        return channel

    def names(self) -> List[str]:
        return list(self._channels)

    def close_all(self) -> None:
        for channel in self._channels.values():
            channel.close()
        self._channels.clear()
