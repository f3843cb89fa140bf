"""Unit tests for domain events and the in-memory event bus."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.events import OrderCreated, OrderStatusChanged
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


class CapturingHandler:
    def __init__(self) -> None:
        self.handled = []

    def handle(self, event) -> None:
        self.handled.append(event)


class FailingHandler:
    def handle(self, event) -> None:
        raise RuntimeError("boom")


def test_event_name_is_class_name():
    event = OrderStatusChanged(
        aggregate_id=uuid4(), payload={"old_status": "pending", "new_status": "shipping"}
    )

    assert event.event_name == "OrderStatusChanged"
    assert event.payload["new_status"] == "shipping"


def test_events_are_immutable():
    event = OrderCreated(aggregate_id=uuid4())

    with pytest.raises(AttributeError):
        event.payload = {}


def test_in_memory_event_bus_routes_events():
    bus = InMemoryEventBus()
    handler = CapturingHandler()
    event = OrderCreated(aggregate_id=uuid4())

    bus.subscribe(OrderCreated, handler)
    bus.publish(event)
    bus.publish(OrderStatusChanged(aggregate_id=uuid4()))

    assert handler.handled == [event]


def test_subscribe_is_idempotent():
    bus = InMemoryEventBus()
    handler = CapturingHandler()

    bus.subscribe(OrderCreated, handler)
    bus.subscribe(OrderCreated, handler)
    bus.publish(OrderCreated(aggregate_id=uuid4()))

    assert len(handler.handled) == 1


def test_unsubscribe_stops_delivery():
    bus = InMemoryEventBus()
    handler = CapturingHandler()

    bus.subscribe(OrderCreated, handler)
    bus.unsubscribe(OrderCreated, handler)
    bus.unsubscribe(OrderCreated, handler)
    bus.publish(OrderCreated(aggregate_id=uuid4()))

    assert handler.handled == []


def test_failing_handler_does_not_block_others():
    bus = InMemoryEventBus()
    handler = CapturingHandler()

    bus.subscribe(OrderCreated, FailingHandler())
    bus.subscribe(OrderCreated, handler)
    bus.publish(OrderCreated(aggregate_id=uuid4()))

    assert len(handler.handled) == 1
