"""Lifecycle events and the broadcast bus that carries them.

Subscribers get their own bounded queue. When a queue is full the oldest
event is dropped, so a slow or abandoned subscriber never holds up the
orchestrator that publishes.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TYPE_CHECKING
import structlog

if TYPE_CHECKING:
    from brokkr.marketplace.models import PluginRecord

log = structlog.get_logger()


@dataclass
class LifecycleEvent:
    """Base class for events emitted by the plugin manager."""

    timestamp: float = field(default_factory=time.time, kw_only=True)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass
class PluginInstalled(LifecycleEvent):
    record: "PluginRecord"


@dataclass
class PluginUninstalled(LifecycleEvent):
    plugin_id: str


@dataclass
class PluginUpdated(LifecycleEvent):
    record: "PluginRecord"
    previous_version: str


@dataclass
class PluginEnabled(LifecycleEvent):
    plugin_id: str


@dataclass
class PluginDisabled(LifecycleEvent):
    plugin_id: str


@dataclass
class CatalogRefreshed(LifecycleEvent):
    count: int


@dataclass
class PluginLoadFailed(LifecycleEvent):
    plugin_id: str
    reason: str


class Subscription:
    """A bounded, drop-oldest queue of events for one consumer.

    Iterate with ``async for`` or call ``get()``; iteration ends once the
    subscription is closed and drained.
    """

    _CLOSED = object()

    def __init__(self, bus: "EventBus", maxsize: int):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def _offer(self, item) -> None:
        """Queue an item without blocking, evicting the oldest if full."""
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                self.dropped += 1

    def deliver(self, event: LifecycleEvent) -> None:
        if not self._closed:
            self._offer(event)

    async def get(self) -> Optional[LifecycleEvent]:
        """Next event, or None once closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is self._CLOSED:
            return None
        return item

    def get_nowait(self) -> Optional[LifecycleEvent]:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is self._CLOSED else item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._offer(self._CLOSED)
        self._bus._remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> LifecycleEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """Multi-subscriber broadcast of lifecycle events.

    Example:
        bus = EventBus()
        sub = bus.subscribe()
        bus.add_listener(lambda e: print(e.name))

        bus.publish(PluginEnabled(plugin_id="terminal"))
        event = await sub.get()
    """

    def __init__(self, buffer_size: int = 64):
        self.buffer_size = buffer_size
        self._subscriptions: list[Subscription] = []
        self._listeners: list[Callable[[LifecycleEvent], None]] = []
        self._enabled = True

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """Create a queue-backed subscription."""
        subscription = Subscription(self, maxsize or self.buffer_size)
        self._subscriptions.append(subscription)
        log.debug("event_subscription_added", subscribers=len(self._subscriptions))
        return subscription

    def add_listener(self, listener: Callable[[LifecycleEvent], None]) -> None:
        """Register a synchronous callback invoked on every publish."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[LifecycleEvent], None]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions) + len(self._listeners)

    def publish(self, event: LifecycleEvent) -> None:
        """Broadcast an event. Never blocks."""
        if not self._enabled:
            return

        log.debug(
            "event_published",
            event_type=event.name,
            subscribers=self.subscriber_count,
        )

        for subscription in list(self._subscriptions):
            subscription.deliver(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.error("event_listener_failed", event_type=event.name, error=str(e))

    def close(self) -> None:
        """Close all subscriptions and drop listeners."""
        for subscription in list(self._subscriptions):
            subscription.close()
        self._listeners.clear()

    def disable(self):
        """Disable event emission."""
        self._enabled = False

    def enable(self):
        """Enable event emission."""
        self._enabled = True
