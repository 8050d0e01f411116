"""Event bus infrastructure for polysim.

Trading services publish position and cycle events here; the CLI and the
examples listen to narrate a session.  Dispatch walks the event's class
hierarchy, so a handler registered for :class:`DomainEvent` sees every
event.  A handler that raises is logged and skipped: listeners never
influence a trading cycle.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from polysim.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


class EventBus:
    """Synchronous pub-sub for domain events.

    Usage::

        bus = EventBus()
        bus.subscribe(PositionClosed, dashboard.print_event)
        engine = TradingEngine(store, provider, event_bus=bus)
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """Call *handler* for *event_type* and its subclasses."""
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self.subscribe(DomainEvent, handler)

    def publish(self, event: DomainEvent) -> None:
        """Deliver *event*, most general subscriptions first."""
        for event_type in reversed(type(event).__mro__):
            for handler in list(self._handlers.get(event_type, ())):
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        "Event handler %r failed on %s", handler, type(event).__name__
                    )
