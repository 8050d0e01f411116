#!/usr/bin/env python3
"""Example 01: A short paper-trading session on simulated markets.

Demonstrates:
- Wiring a TradingEngine from an in-memory ledger and the simulated provider
- Subscribing to position events on the EventBus
- Running several analysis cycles and printing the dashboard

Run:
    PYTHONPATH=src python examples/01_simulated_session.py
"""

from __future__ import annotations

import asyncio
import random
from decimal import Decimal

from polysim.domain.events import DomainEvent, PositionClosed, PositionOpened
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import InMemoryLedgerStore
from polysim.infrastructure.market_data import SimulatedMarketProvider
from polysim.presentation.console import ConsoleDashboard
from polysim.services.engine import TradingEngine


async def run(cycles: int = 10) -> None:
    bus = EventBus()

    def on_event(event: DomainEvent) -> None:
        if isinstance(event, PositionOpened):
            print(f"  -> opened {event.outcome} on {event.market_id} for {event.size}")
        elif isinstance(event, PositionClosed):
            print(f"  <- closed {event.outcome} on {event.market_id}, pnl {event.pnl}")

    bus.subscribe(PositionOpened, on_event)
    bus.subscribe(PositionClosed, on_event)

    engine = TradingEngine(
        store=InMemoryLedgerStore(Decimal("1500")),
        provider=SimulatedMarketProvider(num_markets=10, seed=42),
        rng=random.Random(42),
        event_bus=bus,
    )
    dashboard = ConsoleDashboard()

    for i in range(1, cycles + 1):
        report = await engine.run_analysis_cycle()
        dashboard.print_cycle(i, report)

    dashboard.print_snapshot(await engine.get_dashboard_snapshot())


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
