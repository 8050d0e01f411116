"""Stats aggregation over the trade log and open positions.

Pure read-side computation: nothing here touches the ledger store.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_EVEN, Decimal

from polysim.domain.entities import Account, Position, Trade
from polysim.domain.values import ZERO, TradingStats, money

WIN_RATE_QUANTUM = Decimal("0.1")


def win_rate(wins: int, losses: int) -> Decimal:
    """Percentage of completed trades that won, to one decimal place."""
    completed = wins + losses
    if completed == 0:
        return ZERO
    return (Decimal(wins) / Decimal(completed) * 100).quantize(
        WIN_RATE_QUANTUM, rounding=ROUND_HALF_EVEN
    )


def compute_stats(
    trades: Sequence[Trade],
    positions: Sequence[Position],
    account: Account,
) -> TradingStats:
    """Derive :class:`TradingStats` from the full trade log.

    Parameters
    ----------
    trades:
        The whole trade log, in any order.
    positions:
        Currently open positions.
    account:
        The cash account.

    Returns
    -------
    TradingStats
        ``best_trade`` / ``worst_trade`` are ``None`` when no position has
        been closed yet.  Ties keep the earliest trade in *trades*.
    """
    sells = [t for t in trades if t.is_closing]
    wins = sum(1 for t in sells if t.pnl > ZERO)
    losses = sum(1 for t in sells if t.pnl < ZERO)

    best: Trade | None = None
    worst: Trade | None = None
    for trade in sells:
        if best is None or trade.pnl > best.pnl:
            best = trade
        if worst is None or trade.pnl < worst.pnl:
            worst = trade

    market_value = sum((p.current_value for p in positions), ZERO)
    unrealized = sum((p.pnl for p in positions), ZERO)

    return TradingStats(
        balance=account.balance,
        initial_balance=account.initial_balance,
        total_pnl=money(sum((t.pnl for t in sells), ZERO)),
        unrealized_pnl=money(unrealized),
        total_value=money(account.balance + market_value),
        total_trades=len(trades),
        wins=wins,
        losses=losses,
        win_rate=win_rate(wins, losses),
        best_trade=best,
        worst_trade=worst,
        active_positions=len(positions),
    )
