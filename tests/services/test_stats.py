"""Tests for stats aggregation."""

from __future__ import annotations

from decimal import Decimal

from polysim.domain.entities import Account, Trade
from polysim.domain.enums import TradeAction
from polysim.services.stats import compute_stats, win_rate


def _sell(pnl: str, trade_id: str) -> Trade:
    return Trade(
        market_id=trade_id,
        outcome="Yes",
        action=TradeAction.SELL,
        shares=Decimal("100"),
        price=Decimal("0.5"),
        total=Decimal("50"),
        pnl=Decimal(pnl),
        trade_id=trade_id,
    )


class TestWinRate:
    def test_no_completed_trades(self) -> None:
        assert win_rate(0, 0) == Decimal("0")

    def test_rounded_to_one_place(self) -> None:
        assert win_rate(2, 1) == Decimal("66.7")
        assert win_rate(1, 1) == Decimal("50.0")


class TestComputeStats:
    def test_empty_ledger(self) -> None:
        stats = compute_stats([], [], Account.opened_with(1500))
        assert stats.balance == Decimal("1500")
        assert stats.total_value == Decimal("1500")
        assert stats.total_pnl == Decimal("0")
        assert stats.total_trades == 0
        assert stats.best_trade is None
        assert stats.worst_trade is None
        assert stats.return_percent == Decimal("0")

    def test_realized_and_unrealized(self, opportunity_factory, position_factory) -> None:
        buy = Trade.buy(opportunity_factory(), Decimal("75"), Decimal("187.5"))
        win = _sell("50", "w")
        loss = _sell("-20", "l")
        position = position_factory(shares="100", entry_price="0.5", current_price="0.6")
        account = Account(balance=Decimal("1400"), initial_balance=Decimal("1500"))

        stats = compute_stats([buy, win, loss], [position], account)

        assert stats.total_pnl == Decimal("30")
        assert stats.unrealized_pnl == Decimal("10")
        assert stats.total_value == Decimal("1460")
        assert stats.total_trades == 3
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.win_rate == Decimal("50.0")
        assert stats.best_trade is win
        assert stats.worst_trade is loss
        assert stats.active_positions == 1
        assert stats.return_percent == Decimal("-2.67")

    def test_break_even_sell_is_neither_win_nor_loss(self) -> None:
        stats = compute_stats([_sell("0", "flat")], [], Account.opened_with(100))
        assert stats.wins == stats.losses == 0
        assert stats.win_rate == Decimal("0")
        assert stats.best_trade is not None

    def test_ties_keep_earliest(self) -> None:
        first = _sell("10", "a")
        second = _sell("10", "b")
        stats = compute_stats([first, second], [], Account.opened_with(100))
        assert stats.best_trade is first
        assert stats.worst_trade is first
