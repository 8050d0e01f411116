"""Tests for EventBus."""

from __future__ import annotations

from decimal import Decimal

from polysim.domain.enums import ExitReason
from polysim.domain.events import (
    CycleCompleted,
    DomainEvent,
    PositionClosed,
    PositionOpened,
)
from polysim.infrastructure.event_bus import EventBus


class TestEventBus:
    """Test synchronous EventBus subscription and hierarchy dispatch."""

    def test_subscribe_and_publish(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []
        bus.subscribe(PositionOpened, received.append)

        event = PositionOpened(source_id="test", market_id="m1", size=Decimal("75"))
        bus.publish(event)
        assert received == [event]

    def test_typed_subscription_filters_events(self) -> None:
        bus = EventBus()
        closed: list[DomainEvent] = []
        bus.subscribe(PositionClosed, closed.append)

        bus.publish(PositionOpened(source_id="test"))
        bus.publish(PositionClosed(source_id="test", reason=ExitReason.CUT_LOSS))

        assert len(closed) == 1
        assert closed[0].reason is ExitReason.CUT_LOSS

    def test_subscribe_all(self) -> None:
        bus = EventBus()
        seen: list[DomainEvent] = []
        bus.subscribe_all(seen.append)

        for event in (PositionOpened(), PositionClosed(), CycleCompleted()):
            bus.publish(event)
        assert [type(e) for e in seen] == [PositionOpened, PositionClosed, CycleCompleted]

    def test_general_handlers_run_first(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.subscribe(PositionClosed, lambda e: order.append("closed"))
        bus.subscribe_all(lambda e: order.append("any"))

        bus.publish(PositionClosed(reason=ExitReason.NEAR_RESOLUTION))
        bus.publish(CycleCompleted())

        assert order == ["any", "closed", "any"]

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []

        def boom(event: DomainEvent) -> None:
            raise RuntimeError("handler bug")

        bus.subscribe(CycleCompleted, boom)
        bus.subscribe(CycleCompleted, received.append)
        bus.publish(CycleCompleted(opened=1))

        assert len(received) == 1

