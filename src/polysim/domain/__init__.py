"""Domain layer for polysim.

Re-exports all public domain types so that consumers can write::

    from polysim.domain import Position, Trade, TradeAction
"""

# -- Enumerations -------------------------------------------------------------
from .enums import ExitReason, TradeAction

# -- Value Objects ------------------------------------------------------------
from .values import (
    MONEY_QUANTUM,
    CycleReport,
    DashboardSnapshot,
    Opportunity,
    PositionView,
    PriceQuote,
    Result,
    TradingStats,
    money,
    percent,
    to_decimal,
)

# -- Entities -----------------------------------------------------------------
from .entities import Account, Position, Thought, Trade

# -- Domain Events ------------------------------------------------------------
from .events import (
    CycleCompleted,
    DomainEvent,
    PositionClosed,
    PositionOpened,
    PricesRefreshed,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    CycleError,
    LedgerError,
    MarketDataError,
    PolysimError,
    ReasoningError,
)

__all__ = [
    # Enums
    "ExitReason",
    "TradeAction",
    # Values
    "MONEY_QUANTUM",
    "CycleReport",
    "DashboardSnapshot",
    "Opportunity",
    "PositionView",
    "PriceQuote",
    "Result",
    "TradingStats",
    "money",
    "percent",
    "to_decimal",
    # Entities
    "Account",
    "Position",
    "Thought",
    "Trade",
    # Events
    "CycleCompleted",
    "DomainEvent",
    "PositionClosed",
    "PositionOpened",
    "PricesRefreshed",
    # Exceptions
    "CycleError",
    "LedgerError",
    "MarketDataError",
    "PolysimError",
    "ReasoningError",
]
