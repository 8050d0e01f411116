"""Tests for decimal helpers, Result, and read-side value objects."""

from __future__ import annotations

from decimal import Decimal

import pytest

from polysim.domain.values import (
    CycleReport,
    Opportunity,
    PositionView,
    PriceQuote,
    Result,
    TradingStats,
    money,
    percent,
    to_decimal,
)


class TestToDecimal:
    def test_float_goes_through_str(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_str(self) -> None:
        assert to_decimal(30) == Decimal("30")
        assert to_decimal(" 0.25 ") == Decimal("0.25")

    def test_decimal_passthrough(self) -> None:
        d = Decimal("1.2345678")
        assert to_decimal(d) is d

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_decimal(True)

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_decimal("abc")

    def test_non_finite_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_decimal("nan")
        with pytest.raises(ValueError):
            to_decimal(float("inf"))


class TestMoney:
    def test_quantizes_to_four_places(self) -> None:
        assert money("12.345678") == Decimal("12.3457")
        assert str(money(5)) == "5.0000"

    def test_bankers_rounding(self) -> None:
        assert money("1.00005") == Decimal("1.0000")
        assert money("1.00015") == Decimal("1.0002")

    def test_percent_two_places(self) -> None:
        assert percent(Decimal("100") / 3) == Decimal("33.33")


class TestResult:
    def test_success(self) -> None:
        r = Result.success(5, "op")
        assert r.ok
        assert r.value == 5
        assert r.operation == "op"

    def test_failure_from_exception(self) -> None:
        r = Result.failure(ValueError("boom"), "set_balance")
        assert not r.ok
        assert r.error == "boom"
        assert r.operation == "set_balance"
        assert r.value is None

    def test_failure_with_empty_message_uses_type_name(self) -> None:
        r = Result.failure(ValueError())
        assert r.error == "ValueError"

    def test_unwrap_or(self) -> None:
        assert Result.success([1]).unwrap_or([]) == [1]
        assert Result.success(None).unwrap_or([]) == []
        assert Result.failure("x").unwrap_or([]) == []


class TestMarketValues:
    def test_quote_key_and_coercion(self) -> None:
        q = PriceQuote("m1", "Yes", 0.42)
        assert q.key == ("m1", "Yes")
        assert q.price == Decimal("0.42")

    def test_opportunity_reasons_become_tuple(self) -> None:
        o = Opportunity("m1", "No", "0.3", reasons=["high volume", "newly listed"])
        assert o.reasons == ("high volume", "newly listed")
        assert o.key == ("m1", "No")

    def test_opportunity_is_frozen(self) -> None:
        o = Opportunity("m1", "No", "0.3")
        with pytest.raises(AttributeError):
            o.price = Decimal("0.5")  # type: ignore[misc]


class TestProjections:
    def test_return_percent(self) -> None:
        stats = TradingStats(
            balance=Decimal("1000"),
            initial_balance=Decimal("1500"),
            total_value=Decimal("1650"),
        )
        assert stats.return_percent == Decimal("10.00")

    def test_return_percent_zero_initial(self) -> None:
        assert TradingStats().return_percent == Decimal("0")

    def test_as_context_keys(self) -> None:
        ctx = TradingStats(wins=2, losses=1).as_context()
        assert ctx["wins"] == 2
        assert ctx["losses"] == 1
        assert "win_rate" in ctx
        assert "best_trade" not in ctx

    def test_position_view_rounds_percent(self, position_factory) -> None:
        p = position_factory(shares="100", entry_price="0.30", current_price="0.31")
        view = PositionView.of(p)
        assert view.current_value == Decimal("31.0000")
        assert view.pnl == Decimal("1.0000")
        assert view.pnl_percent == Decimal("3.33")

    def test_cycle_report_elapsed(self) -> None:
        report = CycleReport(started_at=100.0)
        assert report.elapsed_seconds == 0.0
        report.finished_at = 102.5
        assert report.elapsed_seconds == pytest.approx(2.5)
        assert report.trade_count == 0
