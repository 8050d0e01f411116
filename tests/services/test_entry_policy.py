"""Tests for EntryPolicy candidate selection, sizing, and buying."""

from __future__ import annotations

from decimal import Decimal

import pytest

from polysim.domain.enums import TradeAction
from polysim.domain.events import PositionOpened
from polysim.infrastructure.config import TradingConfig
from polysim.services.entry_policy import EntryPolicy, merge_candidates
from polysim.testing import (
    FailingLedgerStore,
    RecordingReasoner,
    ScriptedRandom,
    StaticMarketProvider,
)


class TestMergeCandidates:
    def test_first_occurrence_wins_and_held_keys_dropped(self, opportunity_factory) -> None:
        trending = [opportunity_factory("a"), opportunity_factory("b", price="0.30")]
        fresh = [opportunity_factory("b", price="0.70"), opportunity_factory("c")]
        merged = merge_candidates(trending, fresh, exclude=[("a", "Yes")])
        assert [o.market_id for o in merged] == ["b", "c"]
        assert merged[0].price == Decimal("0.30")

    def test_outcomes_are_distinct_keys(self, opportunity_factory) -> None:
        merged = merge_candidates(
            [opportunity_factory("a", "Yes")], [opportunity_factory("a", "No")]
        )
        assert [o.key for o in merged] == [("a", "Yes"), ("a", "No")]


class TestPositionSize:
    def test_fraction_bounds(self, store, reasoner) -> None:
        policy = EntryPolicy(
            store, StaticMarketProvider(), reasoner, rng=ScriptedRandom([0.0, 1.0])
        )
        assert policy.position_size(Decimal("1500")) == Decimal("75")
        assert policy.position_size(Decimal("1500")) == Decimal("200")

    def test_keeps_minimum_in_reserve(self, store, reasoner) -> None:
        cfg = TradingConfig(min_position_fraction=1.0, max_position_fraction=1.0)
        policy = EntryPolicy(
            store, StaticMarketProvider(), reasoner, cfg, rng=ScriptedRandom([0.5])
        )
        assert policy.position_size(Decimal("100")) == Decimal("70")


class TestRun:
    @pytest.mark.asyncio
    async def test_buy_conserves_cash(
        self, store, reasoner, opportunity_factory, event_bus
    ) -> None:
        opp = opportunity_factory("a", price="0.40", reasons=("high volume", "newly listed"))
        opened_events: list[PositionOpened] = []
        event_bus.subscribe(PositionOpened, opened_events.append)
        policy = EntryPolicy(
            store,
            StaticMarketProvider(trending=[opp]),
            reasoner,
            rng=ScriptedRandom([0.1, 0.0]),
            event_bus=event_bus,
        )

        warnings: list[str] = []
        opened = await policy.run(warnings)

        assert warnings == []
        assert len(opened) == 1
        trade = opened[0]
        assert trade.action is TradeAction.BUY
        assert trade.total == Decimal("75")
        assert trade.shares == Decimal("187.5")
        assert trade.reason == "high volume, newly listed"
        assert (await store.get_account()).value.balance == Decimal("1425")

        position = (await store.get_position("a", "Yes")).value
        assert position.invested == Decimal("75")
        assert position.entry_price == position.current_price == Decimal("0.40")

        thoughts = (await store.list_thoughts()).value
        assert [t.trade_id for t in thoughts] == [trade.trade_id]
        context = reasoner.requests[0]["context"]
        assert context["reasons"] == ["high volume", "newly listed"]
        assert context["total_trades"] == 1
        assert opened_events[0].size == Decimal("75")

    @pytest.mark.asyncio
    async def test_at_most_max_new_trades(self, store, reasoner, opportunity_factory) -> None:
        provider = StaticMarketProvider(
            trending=[opportunity_factory(m) for m in ("a", "b", "c")]
        )
        rng = ScriptedRandom([0.1, 0.0, 0.1, 0.0])
        policy = EntryPolicy(store, provider, reasoner, rng=rng)

        opened = await policy.run([])

        assert [t.market_id for t in opened] == ["a", "b"]
        assert rng.remaining == 0
        # second buy is sized from the balance left after the first
        assert opened[1].total == Decimal("71.25")

    @pytest.mark.asyncio
    async def test_limited_by_free_slots(
        self, store, reasoner, position_factory, opportunity_factory
    ) -> None:
        for i in range(9):
            await store.upsert_position(position_factory(market_id=f"p{i}"))
        provider = StaticMarketProvider(
            trending=[opportunity_factory("a"), opportunity_factory("b")]
        )
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))

        opened = await policy.run([])

        assert [t.market_id for t in opened] == ["a"]
        assert len((await store.list_positions()).value) == 10

    @pytest.mark.asyncio
    async def test_no_provider_call_at_capacity(
        self, store, reasoner, position_factory, opportunity_factory
    ) -> None:
        for i in range(10):
            await store.upsert_position(position_factory(market_id=f"p{i}"))
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        rng = ScriptedRandom()
        policy = EntryPolicy(store, provider, reasoner, rng=rng)

        assert await policy.run([]) == []
        assert sum(provider.calls.values()) == 0
        assert rng.calls == 0

    @pytest.mark.asyncio
    async def test_no_provider_call_on_low_balance(
        self, store, reasoner, opportunity_factory
    ) -> None:
        await store.set_balance(Decimal("59.99"))
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom())

        assert await policy.run([]) == []
        assert sum(provider.calls.values()) == 0

    @pytest.mark.asyncio
    async def test_held_keys_are_skipped(
        self, store, reasoner, position_factory, opportunity_factory
    ) -> None:
        await store.upsert_position(position_factory(market_id="a"))
        provider = StaticMarketProvider(
            trending=[opportunity_factory("a")], new=[opportunity_factory("b")]
        )
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))

        opened = await policy.run([])
        assert [t.market_id for t in opened] == ["b"]

    @pytest.mark.asyncio
    async def test_rejected_draw_skips(self, store, reasoner, opportunity_factory) -> None:
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        rng = ScriptedRandom([0.4])
        policy = EntryPolicy(store, provider, reasoner, rng=rng)

        assert await policy.run([]) == []
        assert rng.calls == 1
        assert (await store.get_account()).value.balance == Decimal("1500")

    @pytest.mark.asyncio
    async def test_too_small_is_skipped(self, store, reasoner, opportunity_factory) -> None:
        await store.set_balance(Decimal("100"))
        provider = StaticMarketProvider(
            trending=[opportunity_factory("a"), opportunity_factory("b")]
        )
        # at most 15% of 100, under the 30 minimum
        policy = EntryPolicy(
            store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0, 0.1, 1.0])
        )

        assert await policy.run([]) == []
        assert (await store.get_account()).value.balance == Decimal("100")
        assert (await store.list_trades()).value == []

    @pytest.mark.asyncio
    async def test_unpriced_is_skipped(self, store, reasoner, opportunity_factory) -> None:
        await store.set_balance(Decimal("100"))
        cfg = TradingConfig(min_position_fraction=1.0, max_position_fraction=1.0)
        provider = StaticMarketProvider(trending=[opportunity_factory("free", price="0")])
        policy = EntryPolicy(store, provider, reasoner, cfg, rng=ScriptedRandom([0.1, 0.0]))

        assert await policy.run([]) == []
        assert (await store.get_account()).value.balance == Decimal("100")
        assert (await store.list_positions()).value == []

    @pytest.mark.asyncio
    async def test_stops_once_balance_below_minimum(self, store, opportunity_factory) -> None:
        class SpendingReasoner(RecordingReasoner):
            """Another writer drains the account while the first buy is narrated."""

            async def explain(self, *args, **kwargs) -> str:
                await store.set_balance(Decimal("20"))
                return await super().explain(*args, **kwargs)

        provider = StaticMarketProvider(
            trending=[opportunity_factory("a"), opportunity_factory("b")]
        )
        rng = ScriptedRandom([0.1, 0.0, 0.1, 0.0])
        policy = EntryPolicy(store, provider, SpendingReasoner(), rng=rng)

        opened = await policy.run([])

        assert [t.market_id for t in opened] == ["a"]
        # accept, size, accept: no sizing draw for "b"
        assert rng.calls == 3
        assert rng.remaining == 1
        assert (await store.get_position("b", "Yes")).value is None
        assert (await store.get_account()).value.balance == Decimal("20")

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_warning(
        self, store, reasoner, opportunity_factory
    ) -> None:
        provider = StaticMarketProvider(
            trending=[opportunity_factory("a")], raise_on={"list_new_opportunities"}
        )
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))
        warnings: list[str] = []

        opened = await policy.run(warnings)

        assert [t.market_id for t in opened] == ["a"]
        assert warnings == ["list_new_opportunities: provider down"]

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_warning(
        self, store, reasoner, opportunity_factory
    ) -> None:
        provider = StaticMarketProvider(
            new=[opportunity_factory("b")], fail={"list_trending_opportunities"}
        )
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))
        warnings: list[str] = []

        opened = await policy.run(warnings)

        assert [t.market_id for t in opened] == ["b"]
        assert warnings == ["list_trending_opportunities: provider offline"]


class TestOpenFailures:
    @pytest.mark.asyncio
    async def test_failed_debit_writes_nothing(self, reasoner, opportunity_factory) -> None:
        store = FailingLedgerStore(fail_on={"set_balance"})
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))
        warnings: list[str] = []

        assert await policy.run(warnings) == []
        assert any("set_balance" in w for w in warnings)
        assert (await store.list_positions()).value == []
        assert (await store.list_trades()).value == []
        assert reasoner.requests == []

    @pytest.mark.asyncio
    async def test_failed_append_keeps_position_without_thought(
        self, reasoner, opportunity_factory
    ) -> None:
        store = FailingLedgerStore(fail_on={"append_trade"})
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))
        warnings: list[str] = []

        opened = await policy.run(warnings)

        assert len(opened) == 1
        assert opened[0].trade_id == ""
        assert any("append_trade" in w for w in warnings)
        assert (await store.get_account()).value.balance == Decimal("1425")
        assert len((await store.list_positions()).value) == 1
        assert (await store.list_thoughts()).value == []

    @pytest.mark.asyncio
    async def test_empty_narrative_stores_no_thought(self, store, opportunity_factory) -> None:
        reasoner = RecordingReasoner("")
        provider = StaticMarketProvider(trending=[opportunity_factory("a")])
        policy = EntryPolicy(store, provider, reasoner, rng=ScriptedRandom([0.1, 0.0]))

        opened = await policy.run([])

        assert len(opened) == 1
        assert len(reasoner.requests) == 1
        assert (await store.list_thoughts()).value == []
