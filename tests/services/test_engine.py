"""Tests for TradingEngine cycles and dashboard snapshots."""

from __future__ import annotations

import random
from decimal import Decimal

import pytest

from polysim.domain.entities import Trade
from polysim.domain.enums import ExitReason, TradeAction
from polysim.domain.events import CycleCompleted, DomainEvent
from polysim.domain.exceptions import CycleError, LedgerError
from polysim.infrastructure.config import StorageConfig, TradingConfig
from polysim.infrastructure.ledger_store import InMemoryLedgerStore
from polysim.infrastructure.market_data import SimulatedMarketProvider
from polysim.services.engine import TradingEngine, create_engine
from polysim.services.reasoning import TemplateReasoner
from polysim.testing import FailingLedgerStore, ScriptedRandom, StaticMarketProvider


class TestConstruction:
    def test_invalid_config_rejected(self, store) -> None:
        with pytest.raises(ValueError):
            TradingEngine(store, StaticMarketProvider(), config=TradingConfig(max_positions=0))

    def test_defaults(self, store) -> None:
        engine = TradingEngine(store, StaticMarketProvider())
        assert isinstance(engine.reasoner, TemplateReasoner)
        assert engine.config == TradingConfig()

    def test_create_engine_from_sections(self) -> None:
        engine = create_engine(
            {
                "trading": TradingConfig(initial_balance=800),
                "storage": StorageConfig(backend="memory"),
            }
        )
        assert isinstance(engine.store, InMemoryLedgerStore)
        assert isinstance(engine.provider, SimulatedMarketProvider)
        assert engine.store.initial_balance == Decimal("800")


class TestAnalysisCycle:
    @pytest.mark.asyncio
    async def test_empty_cycle(self, store, reasoner, event_bus) -> None:
        provider = StaticMarketProvider()
        events: list[DomainEvent] = []
        event_bus.subscribe(CycleCompleted, events.append)
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom(), event_bus=event_bus)

        report = await engine.run_analysis_cycle()

        assert report.prices_refreshed == 0
        assert report.closed == []
        assert report.opened == []
        assert report.warnings == []
        assert report.finished_at >= report.started_at
        assert provider.calls == {
            "refresh_prices": 0,
            "list_trending_opportunities": 1,
            "list_new_opportunities": 1,
        }
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_exit_sees_refreshed_price(self, store, reasoner, position_factory) -> None:
        await store.upsert_position(position_factory(market_id="a"))
        await store.set_balance(Decimal("1450"))
        provider = StaticMarketProvider(prices={("a", "Yes"): "0.70"})
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom())

        report = await engine.run_analysis_cycle()

        assert report.prices_refreshed == 1
        assert [t.reason for t in report.closed] == [ExitReason.TAKE_PROFIT.value]
        assert report.closed[0].price == Decimal("0.70")
        assert (await store.get_account()).value.balance == Decimal("1520")
        assert (await store.list_positions()).value == []

    @pytest.mark.asyncio
    async def test_closed_then_opened_in_one_cycle(
        self, store, reasoner, position_factory, opportunity_factory
    ) -> None:
        await store.upsert_position(position_factory(market_id="a", current_price="0.375"))
        provider = StaticMarketProvider(trending=[opportunity_factory("b")])
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))

        report = await engine.run_analysis_cycle()

        assert [t.market_id for t in report.closed] == ["a"]
        assert [t.market_id for t in report.opened] == ["b"]
        assert report.trade_count == 2

    @pytest.mark.asyncio
    async def test_provider_failures_are_warnings(
        self, store, reasoner, position_factory
    ) -> None:
        await store.upsert_position(position_factory(market_id="a"))
        provider = StaticMarketProvider(
            fail={"refresh_prices", "list_trending_opportunities", "list_new_opportunities"}
        )
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom())

        report = await engine.run_analysis_cycle()

        assert len(report.warnings) == 3
        assert report.prices_refreshed == 0
        assert report.opened == []

    @pytest.mark.asyncio
    async def test_raising_provider_counts_as_no_data(
        self, store, reasoner, position_factory, opportunity_factory
    ) -> None:
        await store.upsert_position(position_factory(market_id="a"))
        provider = StaticMarketProvider(
            new=[opportunity_factory("b")],
            raise_on={"refresh_prices", "list_trending_opportunities"},
        )
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))

        report = await engine.run_analysis_cycle()

        assert report.warnings == [
            "refresh_prices: provider down",
            "list_trending_opportunities: provider down",
        ]
        assert report.prices_refreshed == 0
        assert report.closed == []
        assert [t.market_id for t in report.opened] == ["b"]
        assert provider.calls["list_new_opportunities"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_raises_cycle_error(
        self, store, reasoner, opportunity_factory
    ) -> None:
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        # the accept draw has nothing scripted
        engine = TradingEngine(store, provider, reasoner, rng=ScriptedRandom())

        with pytest.raises(CycleError) as excinfo:
            await engine.run_analysis_cycle()
        assert isinstance(excinfo.value.__cause__, IndexError)

    @pytest.mark.asyncio
    async def test_simulated_run_keeps_ledger_consistent(self) -> None:
        store = InMemoryLedgerStore(Decimal("1500"))
        engine = TradingEngine(
            store,
            SimulatedMarketProvider(num_markets=8, seed=7),
            rng=random.Random(7),
        )
        for _ in range(25):
            await engine.run_analysis_cycle()

        account = (await store.get_account()).value
        positions = (await store.list_positions()).value
        trades = (await store.list_trades()).value
        thoughts = (await store.list_thoughts()).value

        assert account.balance >= 0
        assert len({p.key for p in positions}) == len(positions)
        assert len(positions) <= engine.config.max_positions
        spent = sum((t.total for t in trades if t.action is TradeAction.BUY), Decimal("0"))
        received = sum((t.total for t in trades if t.is_closing), Decimal("0"))
        assert account.balance == Decimal("1500") - spent + received
        assert len({t.trade_id for t in trades}) == len(trades)
        assert {th.trade_id for th in thoughts} == {t.trade_id for t in trades}


class TestDashboardSnapshot:
    @pytest.mark.asyncio
    async def test_snapshot_does_not_mutate(self, store, position_factory) -> None:
        await store.upsert_position(position_factory(current_price="0.6"))
        engine = TradingEngine(store, StaticMarketProvider())

        first = await engine.get_dashboard_snapshot()
        second = await engine.get_dashboard_snapshot()

        assert first.stats == second.stats
        assert first.positions == second.positions
        assert first.recent_trades == second.recent_trades
        assert first.stats.total_value == Decimal("1560")

    @pytest.mark.asyncio
    async def test_pnl_percent_rounded(self, store, position_factory) -> None:
        await store.upsert_position(
            position_factory(shares="100", entry_price="0.3", current_price="0.31")
        )
        engine = TradingEngine(store, StaticMarketProvider())
        snapshot = await engine.get_dashboard_snapshot()
        assert snapshot.positions[0].pnl_percent == Decimal("3.33")
        assert snapshot.positions[0].pnl == Decimal("1")

    @pytest.mark.asyncio
    async def test_default_log_limits(self, store, opportunity_factory) -> None:
        for i in range(25):
            trade = Trade.buy(opportunity_factory(f"m{i}"), Decimal("30"), Decimal("75"))
            trade_id = (await store.append_trade(trade)).value
            await store.append_thought(trade_id, f"note {i}")
        engine = TradingEngine(store, StaticMarketProvider())

        snapshot = await engine.get_dashboard_snapshot()
        assert len(snapshot.recent_trades) == 20
        assert len(snapshot.recent_thoughts) == 10
        assert snapshot.recent_trades[0].market_id == "m24"
        assert snapshot.stats.total_trades == 25

        narrow = await engine.get_dashboard_snapshot(trades_limit=3, thoughts_limit=1)
        assert len(narrow.recent_trades) == 3
        assert [t.content for t in narrow.recent_thoughts] == ["note 24"]

    @pytest.mark.asyncio
    async def test_read_failure_raises(self) -> None:
        engine = TradingEngine(FailingLedgerStore(fail_on={"list_trades"}), StaticMarketProvider())
        with pytest.raises(LedgerError) as excinfo:
            await engine.get_dashboard_snapshot()
        assert excinfo.value.operation == "list_trades"
