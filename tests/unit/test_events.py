"""Tests for the publish/subscribe event manager."""

from __future__ import annotations

import logging

import pytest

from unixsockmon.events import EventManager

pytestmark = pytest.mark.unit


async def test_subscribers_run_in_subscription_order() -> None:
    calls: list[tuple[str, str]] = []
    events: EventManager[str] = EventManager()
    events.subscribe(lambda e: calls.append(("first", e)))
    events.subscribe(lambda e: calls.append(("second", e)))

    async with events:
        events.publish("one")
        events.publish("two")

    assert calls == [
        ("first", "one"),
        ("second", "one"),
        ("first", "two"),
        ("second", "two"),
    ]


async def test_failing_subscriber_does_not_block_others(caplog) -> None:
    seen: list[int] = []
    events: EventManager[int] = EventManager()

    def _boom(event: int) -> None:
        raise ValueError(f"bad event {event}")

    events.subscribe(_boom)
    events.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger="unixsockmon.events"):
        async with events:
            events.publish(1)
            events.publish(2)

    assert seen == [1, 2]
    assert sum("Event subscriber 0 failed" in m for m in caplog.messages) == 2


async def test_subscriber_added_during_dispatch_sees_next_event_only() -> None:
    late: list[str] = []
    events: EventManager[str] = EventManager()

    def _subscribe_late(event: str) -> None:
        if event == "first":
            events.subscribe(late.append)

    events.subscribe(_subscribe_late)
    async with events:
        events.publish("first")
        events.publish("second")

    assert late == ["second"]


async def test_unsubscribe_stops_delivery() -> None:
    seen: list[str] = []
    events: EventManager[str] = EventManager()
    sub = events.subscribe(seen.append)
    assert events.subscriber_count == 1

    events.unsubscribe(sub)
    async with events:
        events.publish("ignored")

    assert seen == []
    assert events.subscriber_count == 0


async def test_close_delivers_pending_events_then_rejects_publish() -> None:
    seen: list[int] = []
    events: EventManager[int] = EventManager()
    events.subscribe(seen.append)
    events.start()
    for n in range(50):
        events.publish(n)

    await events.close()

    assert seen == list(range(50))
    with pytest.raises(RuntimeError, match="closed"):
        events.publish(50)
    with pytest.raises(RuntimeError, match="closed"):
        events.start()
