"""Domain entities for polysim.

Entities have identity that persists across mutations.  ``Account`` is a
singleton, ``Position`` is identified by its ``(market_id, outcome)`` key,
and ``Trade`` / ``Thought`` receive store-assigned ids when appended to the
log.  All entities are frozen; mutations produce a new instance that the
ledger store persists.
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass, field
from decimal import Decimal

from .enums import ExitReason, TradeAction
from .values import ZERO, Opportunity, money, to_decimal

# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Account:
    """The single simulated cash account.

    ``initial_balance`` is fixed at creation; only ``balance`` moves.
    """

    balance: Decimal
    initial_balance: Decimal
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "balance", money(self.balance))
        object.__setattr__(self, "initial_balance", money(self.initial_balance))

    @classmethod
    def opened_with(cls, initial_balance: Decimal | float | int | str) -> Account:
        """Return a fresh account whose balance equals its initial balance."""
        amount = money(initial_balance)
        return cls(balance=amount, initial_balance=amount)

    def with_balance(self, balance: Decimal) -> Account:
        return dataclasses.replace(self, balance=money(balance), updated_at=time.time())


# ---------------------------------------------------------------------------
# Position
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """An open holding of ``shares`` in one market outcome.

    The natural key ``(market_id, outcome)`` is unique across the ledger.
    Mark-to-market values are derived from ``current_price`` and never stored.
    """

    market_id: str
    outcome: str
    shares: Decimal
    entry_price: Decimal
    current_price: Decimal
    invested: Decimal
    market_slug: str = ""
    market_title: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shares", to_decimal(self.shares))
        object.__setattr__(self, "entry_price", to_decimal(self.entry_price))
        object.__setattr__(self, "current_price", to_decimal(self.current_price))
        object.__setattr__(self, "invested", money(self.invested))

    @classmethod
    def opened_from(cls, opportunity: Opportunity, size: Decimal, shares: Decimal) -> Position:
        """Build a new position bought at the opportunity's price."""
        return cls(
            market_id=opportunity.market_id,
            outcome=opportunity.outcome,
            shares=shares,
            entry_price=opportunity.price,
            current_price=opportunity.price,
            invested=size,
            market_slug=opportunity.slug,
            market_title=opportunity.title,
        )

    # -- derived values -------------------------------------------------------

    @property
    def key(self) -> tuple[str, str]:
        return (self.market_id, self.outcome)

    @property
    def current_value(self) -> Decimal:
        return money(self.shares * self.current_price)

    @property
    def pnl(self) -> Decimal:
        return money(self.current_value - self.invested)

    @property
    def pnl_percent(self) -> Decimal:
        """Unrealized P&L relative to cost basis; 0 when nothing is invested."""
        if self.invested == ZERO:
            return ZERO
        return self.pnl / self.invested * 100

    # -- transitions ----------------------------------------------------------

    def with_price(self, price: Decimal) -> Position:
        return dataclasses.replace(
            self, current_price=to_decimal(price), updated_at=time.time()
        )

    def merged_with(self, other: Position) -> Position:
        """Accumulate a repeat buy of the same key into this position.

        Shares and cost basis are summed; ``entry_price`` becomes the
        weighted-average cost per share and ``current_price`` takes the
        newer quote.
        """
        if other.key != self.key:
            raise ValueError(f"Cannot merge position {other.key} into {self.key}")
        shares = self.shares + other.shares
        invested = money(self.invested + other.invested)
        entry_price = invested / shares if shares > ZERO else other.entry_price
        return dataclasses.replace(
            self,
            shares=shares,
            invested=invested,
            entry_price=entry_price,
            current_price=other.current_price,
            market_slug=self.market_slug or other.market_slug,
            market_title=self.market_title or other.market_title,
            updated_at=time.time(),
        )


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Trade:
    """An immutable entry in the trade log.

    ``trade_id`` is empty until the ledger store appends the trade.
    ``pnl`` is zero for BUY trades and the realized value for SELL trades.
    """

    market_id: str
    outcome: str
    action: TradeAction
    shares: Decimal
    price: Decimal
    total: Decimal
    pnl: Decimal = ZERO
    market_slug: str = ""
    market_title: str = ""
    reason: str = ""
    trade_id: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", TradeAction(self.action))
        object.__setattr__(self, "shares", to_decimal(self.shares))
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "total", money(self.total))
        object.__setattr__(self, "pnl", money(self.pnl))

    @classmethod
    def buy(cls, opportunity: Opportunity, size: Decimal, shares: Decimal) -> Trade:
        return cls(
            market_id=opportunity.market_id,
            outcome=opportunity.outcome,
            action=TradeAction.BUY,
            shares=shares,
            price=opportunity.price,
            total=size,
            market_slug=opportunity.slug,
            market_title=opportunity.title,
            reason=", ".join(opportunity.reasons),
        )

    @classmethod
    def sell(cls, position: Position, reason: ExitReason) -> Trade:
        """Close *position* in full at its current price."""
        return cls(
            market_id=position.market_id,
            outcome=position.outcome,
            action=TradeAction.SELL,
            shares=position.shares,
            price=position.current_price,
            total=position.current_value,
            pnl=position.pnl,
            market_slug=position.market_slug,
            market_title=position.market_title,
            reason=reason.value,
        )

    @property
    def is_closing(self) -> bool:
        return self.action == TradeAction.SELL

    def with_id(self, trade_id: str) -> Trade:
        return dataclasses.replace(self, trade_id=trade_id)


# ---------------------------------------------------------------------------
# Thought
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Thought:
    """A reasoning note attached to one trade.

    Carries a snapshot of the trade's title, action, and outcome so it can be
    displayed without looking the trade up.
    """

    trade_id: str
    content: str
    market_title: str = ""
    action: TradeAction | None = None
    outcome: str = ""
    thought_id: str = ""
    created_at: float = field(default_factory=time.time)

    @classmethod
    def about(cls, trade: Trade, content: str) -> Thought:
        return cls(
            trade_id=trade.trade_id,
            content=content,
            market_title=trade.market_title,
            action=trade.action,
            outcome=trade.outcome,
        )
