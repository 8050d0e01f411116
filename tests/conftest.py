"""Shared fixtures for the polysim test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

import pytest

from polysim.domain.entities import Position
from polysim.domain.values import Opportunity
from polysim.infrastructure.config import TradingConfig
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import InMemoryLedgerStore
from polysim.testing import RecordingReasoner

# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_position(
    market_id: str = "m1",
    outcome: str = "Yes",
    shares: Any = "100",
    entry_price: Any = "0.5",
    current_price: Any = None,
    invested: Any = None,
    **kwargs: Any,
) -> Position:
    """Position whose cost basis defaults to ``shares * entry_price``."""
    shares_d = Decimal(str(shares))
    entry_d = Decimal(str(entry_price))
    return Position(
        market_id=market_id,
        outcome=outcome,
        shares=shares_d,
        entry_price=entry_d,
        current_price=entry_d if current_price is None else current_price,
        invested=shares_d * entry_d if invested is None else invested,
        market_slug=kwargs.pop("market_slug", f"{market_id}-slug"),
        market_title=kwargs.pop("market_title", f"Market {market_id}"),
        **kwargs,
    )


def make_opportunity(
    market_id: str = "m1",
    outcome: str = "Yes",
    price: Any = "0.40",
    reasons: tuple[str, ...] = ("high volume",),
) -> Opportunity:
    return Opportunity(
        market_id=market_id,
        outcome=outcome,
        price=price,
        slug=f"{market_id}-slug",
        title=f"Market {market_id}",
        reasons=reasons,
    )


@pytest.fixture
def position_factory() -> Callable[..., Position]:
    return make_position


@pytest.fixture
def opportunity_factory() -> Callable[..., Opportunity]:
    return make_opportunity


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> TradingConfig:
    """Default trading thresholds."""
    return TradingConfig()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    """Empty in-memory ledger seeded with 1500."""
    return InMemoryLedgerStore(Decimal("1500"))


@pytest.fixture
def reasoner() -> RecordingReasoner:
    return RecordingReasoner("thinking out loud")


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()
