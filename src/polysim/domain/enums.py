"""Domain enumerations for polysim.

These enums capture the fixed vocabularies of the ledger: trade actions and
the reasons an open position may be closed.
"""

from enum import Enum


class TradeAction(Enum):
    """Direction of a recorded trade."""

    BUY = "BUY"
    SELL = "SELL"


class ExitReason(Enum):
    """Why the exit policy closed a position.

    Members are listed in evaluation priority order.
    """

    TAKE_PROFIT = "take profit"
    CUT_LOSS = "cut loss"
    NEAR_RESOLUTION = "near resolution"  # capped upside
    LOCK_IN_GAINS = "lock in gains"  # stochastic
