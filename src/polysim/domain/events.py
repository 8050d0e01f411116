"""Domain events for polysim.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  The
trading engine publishes them on an optional event bus; listeners (logging,
the CLI, tests) react without influencing control flow.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal

from .enums import ExitReason
from .values import ZERO

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Position lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PositionOpened(DomainEvent):
    """The entry policy bought into a market outcome."""

    trade_id: str = ""
    market_id: str = ""
    outcome: str = ""
    price: Decimal = ZERO
    size: Decimal = ZERO
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class PositionClosed(DomainEvent):
    """The exit policy sold a position in full."""

    trade_id: str = ""
    market_id: str = ""
    outcome: str = ""
    price: Decimal = ZERO
    pnl: Decimal = ZERO
    reason: ExitReason | None = None


# ---------------------------------------------------------------------------
# Cycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricesRefreshed(DomainEvent):
    """Open positions were re-marked with provider prices."""

    requested: int = 0
    updated: int = 0


@dataclass(frozen=True)
class CycleCompleted(DomainEvent):
    """An analysis cycle finished (with or without trades)."""

    opened: int = 0
    closed: int = 0
    warnings: int = 0
    elapsed_seconds: float = 0.0
