"""Publish/subscribe event manager with a single dispatching consumer.

Events are queued by :meth:`EventManager.publish` and delivered, one at a time
and in publish order, to every subscriber by one consumer task. Subscribers
run in subscription order. A subscriber registered while an event is being
delivered first sees the next event.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_CLOSE = object()

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Subscription:
    """Token returned by :meth:`EventManager.subscribe`."""

    id: int
    callback: Callable[[Any], None] = field(compare=False)


class EventManager(Generic[T]):
    """Fan each published event out to N ordered callbacks.

    Usage::

        events: EventManager[ConnectionEvent] = EventManager()
        events.subscribe(lambda e: print(e))
        events.start()
        events.publish(event)
        await events.close()
    """

    def __init__(self, *, maxsize: int = 0) -> None:
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()
        self._next_id = 0
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._consumer: asyncio.Task[None] | None = None
        self._closed = False

    async def __aenter__(self) -> EventManager[T]:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Register *callback*; it runs after every earlier subscriber."""
        with self._lock:
            sub = Subscription(id=self._next_id, callback=callback)
            self._next_id += 1
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers = [s for s in self._subscribers if s.id != subscription.id]

    def start(self) -> None:
        """Start the consumer task on the running event loop."""
        if self._closed:
            msg = "event manager is closed"
            raise RuntimeError(msg)
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._dispatch(), name="event-manager")
            logger.debug("Event manager ready")

    def publish(self, event: T) -> None:
        """Queue *event* for delivery to all current subscribers.

        Raises:
            RuntimeError: If the manager has been closed.
            asyncio.QueueFull: If a bounded queue is full.
        """
        if self._closed:
            msg = "event manager is closed"
            raise RuntimeError(msg)
        self._queue.put_nowait(event)

    async def close(self) -> None:
        """Deliver everything already published, then stop the consumer."""
        if self._closed:
            return
        self._closed = True
        if self._consumer is None:
            return
        await self._queue.put(_CLOSE)
        await self._consumer
        self._consumer = None

    def _snapshot(self) -> tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._subscribers)

    async def _dispatch(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _CLOSE:
                logger.debug("Event manager exiting")
                return
            for sub in self._snapshot():
                try:
                    sub.callback(event)
                except Exception:
                    logger.exception("Event subscriber %d failed", sub.id)


__all__ = ["EventManager", "Subscription"]
