"""Value objects for polysim.

All types here are frozen dataclasses, immutable and compared by value.
They represent market observations, typed operation results, and read-side
projections of the ledger that have no identity beyond their content.

Money is carried as :class:`decimal.Decimal`.  Cash amounts (balances, sizes,
totals, cost basis, P&L) are quantized to :data:`MONEY_QUANTUM`; prices and
share counts keep full context precision.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from .entities import Position, Thought, Trade

T = TypeVar("T")

MONEY_QUANTUM = Decimal("0.0001")
PERCENT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------


def to_decimal(value: Any) -> Decimal:
    """Coerce *value* into a ``Decimal``.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Raises
    ------
    ValueError
        If *value* cannot be interpreted as a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Cannot convert bool {value!r} to Decimal")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Cannot convert {value!r} to Decimal") from exc
    if not result.is_finite():
        raise ValueError(f"Decimal value must be finite, got {value!r}")
    return result


def money(value: Any) -> Decimal:
    """Return *value* as a cash amount quantized to ``MONEY_QUANTUM``."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


def percent(value: Any) -> Decimal:
    """Return *value* rounded to two decimal places for display."""
    return to_decimal(value).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_EVEN)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Result(Generic[T]):
    """Typed outcome of a storage or provider call.

    A result is successful when ``error`` is empty.  Failed results carry a
    human-readable error and the name of the operation that produced it, so
    the engine can decide whether to continue or abandon a transition.
    """

    value: T | None = None
    error: str = ""
    operation: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @classmethod
    def success(cls, value: T | None = None, operation: str = "") -> Result[T]:
        return cls(value=value, operation=operation)

    @classmethod
    def failure(cls, error: str | BaseException, operation: str = "") -> Result[T]:
        message = str(error) or type(error).__name__
        return cls(error=message, operation=operation)

    def unwrap_or(self, default: T) -> T:
        """Return the value when successful and not ``None``, else *default*."""
        if self.ok and self.value is not None:
            return self.value
        return default


# ---------------------------------------------------------------------------
# Market observations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceQuote:
    """A refreshed per-share price for one ``(market_id, outcome)`` key."""

    market_id: str
    outcome: str
    price: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))

    @property
    def key(self) -> tuple[str, str]:
        return (self.market_id, self.outcome)


@dataclass(frozen=True)
class Opportunity:
    """A candidate market outcome surfaced by the market data provider.

    ``reasons`` lists the qualifying signals (e.g. ``"high volume"``) that
    made the provider surface it; they are passed through to the reasoning
    generator and recorded on the BUY trade.
    """

    market_id: str
    outcome: str
    price: Decimal
    slug: str = ""
    title: str = ""
    reasons: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "reasons", tuple(self.reasons))

    @property
    def key(self) -> tuple[str, str]:
        return (self.market_id, self.outcome)


# ---------------------------------------------------------------------------
# Read-side projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TradingStats:
    """Aggregate performance derived from the trade log and open positions."""

    balance: Decimal = ZERO
    initial_balance: Decimal = ZERO
    total_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    total_value: Decimal = ZERO
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: Decimal = ZERO
    best_trade: Trade | None = None
    worst_trade: Trade | None = None
    active_positions: int = 0

    @property
    def completed_trades(self) -> int:
        return self.wins + self.losses

    @property
    def return_percent(self) -> Decimal:
        """Total account return against the initial balance, in percent."""
        if self.initial_balance == ZERO:
            return ZERO
        return percent((self.total_value - self.initial_balance) / self.initial_balance * 100)

    def as_context(self) -> dict[str, Any]:
        """Flatten into a plain dict for the reasoning generator."""
        return {
            "balance": self.balance,
            "initial_balance": self.initial_balance,
            "total_pnl": self.total_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "total_trades": self.total_trades,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "active_positions": self.active_positions,
        }


@dataclass(frozen=True)
class PositionView:
    """A position annotated with mark-to-market fields for display."""

    position: Position
    current_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal

    @classmethod
    def of(cls, position: Position) -> PositionView:
        return cls(
            position=position,
            current_value=position.current_value,
            pnl=position.pnl,
            pnl_percent=percent(position.pnl_percent),
        )


@dataclass(frozen=True)
class DashboardSnapshot:
    """Read-only composite of stats, positions, and the recent logs."""

    stats: TradingStats
    positions: tuple[PositionView, ...] = ()
    recent_trades: tuple[Trade, ...] = ()
    recent_thoughts: tuple[Thought, ...] = ()
    timestamp: float = field(default_factory=time.time)


@dataclass
class CycleReport:
    """Captures the outcome of one analysis cycle.

    Attributes
    ----------
    prices_refreshed:
        Number of positions whose price was rewritten.
    closed:
        SELL trades recorded by the exit policy.
    opened:
        BUY trades recorded by the entry policy.
    warnings:
        Non-fatal problems (provider or storage failures) encountered.
    """

    started_at: float = field(default_factory=time.time)
    finished_at: float = 0.0
    prices_refreshed: int = 0
    closed: list[Trade] = field(default_factory=list)
    opened: list[Trade] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return self.finished_at - self.started_at

    @property
    def trade_count(self) -> int:
        return len(self.closed) + len(self.opened)
