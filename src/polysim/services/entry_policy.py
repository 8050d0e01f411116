"""Entry policy: pick new opportunities, size them, and buy."""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable, Iterable, Sequence
from decimal import Decimal

from polysim.domain.entities import Account, Position, Trade
from polysim.domain.events import PositionOpened
from polysim.domain.values import ZERO, Opportunity, Result, money, to_decimal
from polysim.infrastructure.config import TradingConfig
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import LedgerStore
from polysim.infrastructure.market_data import MarketDataProvider
from polysim.services.journal import record_thought, trade_context
from polysim.services.reasoning import BaseReasoner

logger = logging.getLogger(__name__)


def merge_candidates(
    *batches: Iterable[Opportunity],
    exclude: Iterable[tuple[str, str]] = (),
) -> list[Opportunity]:
    """Concatenate *batches* in order, keeping the first of each key.

    Keys in *exclude* (already held) are dropped.
    """
    seen = set(exclude)
    merged: list[Opportunity] = []
    for batch in batches:
        for opp in batch:
            if opp.key in seen:
                continue
            seen.add(opp.key)
            merged.append(opp)
    return merged


class EntryPolicy:
    """Opens new positions from provider opportunities.

    The policy does nothing when the position cap is reached or the balance
    is below twice the minimum trade size.  Otherwise the first
    ``min(max_new_trades_per_cycle, free slots)`` candidates are attempted;
    each is accepted with ``entry_accept_probability`` and sized as
    ``min(fraction * balance, max_position_size, balance - min_trade_size)``
    with the fraction drawn uniformly from the configured band.
    """

    def __init__(
        self,
        store: LedgerStore,
        provider: MarketDataProvider,
        reasoner: BaseReasoner,
        config: TradingConfig | None = None,
        rng: random.Random | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._reasoner = reasoner
        self._config = config or TradingConfig()
        self._rng = rng or random.Random()
        self._event_bus = event_bus

    # -- candidate sourcing -------------------------------------------------

    async def _fetch(
        self,
        name: str,
        listing: Callable[[], Awaitable[Result[list[Opportunity]]]],
        warnings: list[str],
    ) -> list[Opportunity]:
        try:
            result = await listing()
        except Exception as exc:
            logger.warning("No %s opportunities: %s", name, exc)
            warnings.append(f"{listing.__name__}: {exc}")
            return []
        if not result.ok:
            logger.warning("No %s opportunities: %s", name, result.error)
            warnings.append(f"{result.operation or name}: {result.error}")
            return []
        return result.unwrap_or([])

    async def candidates(
        self, open_keys: Iterable[tuple[str, str]], warnings: list[str]
    ) -> list[Opportunity]:
        """Trending then new opportunities, deduplicated, minus held keys."""
        trending = await self._fetch(
            "trending", self._provider.list_trending_opportunities, warnings
        )
        fresh = await self._fetch("new", self._provider.list_new_opportunities, warnings)
        merged = merge_candidates(trending, fresh, exclude=open_keys)
        logger.info("Found %d opportunities", len(merged))
        return merged

    # -- sizing -------------------------------------------------------------

    def position_size(self, balance: Decimal) -> Decimal:
        """Draw a sizing fraction and return the cash to commit."""
        cfg = self._config
        fraction = to_decimal(
            self._rng.uniform(cfg.min_position_fraction, cfg.max_position_fraction)
        )
        return money(
            min(fraction * balance, cfg.max_position_size, balance - cfg.min_trade_size)
        )

    # -- execution ----------------------------------------------------------

    async def run(self, warnings: list[str]) -> list[Trade]:
        """Attempt new trades for this cycle and return the BUYs recorded."""
        cfg = self._config
        positions = await self._store.list_positions()
        account = await self._store.get_account()
        if not positions.ok or not account.ok or account.value is None:
            warnings.append(
                f"entry preconditions: {positions.error or account.error}"
            )
            return []

        open_positions: Sequence[Position] = positions.unwrap_or([])
        open_count = len(open_positions)
        if open_count >= cfg.max_positions:
            logger.info("Max positions reached, skipping new trades")
            return []
        if account.value.balance < cfg.min_trade_size * 2:
            logger.info("Low balance, skipping new trades")
            return []

        candidates = await self.candidates((p.key for p in open_positions), warnings)
        slots = min(cfg.max_new_trades_per_cycle, cfg.max_positions - open_count)

        opened: list[Trade] = []
        for opp in candidates[:slots]:
            if self._rng.random() >= cfg.entry_accept_probability:
                logger.debug("Skipping %s/%s (not selected)", opp.market_id, opp.outcome)
                continue

            current = await self._store.get_account()
            if not current.ok or current.value is None:
                warnings.append(f"get_account: {current.error}")
                break
            balance = current.value.balance
            if balance < cfg.min_trade_size:
                logger.info("Balance %s below minimum trade size, stopping", balance)
                break

            size = self.position_size(balance)
            if size < cfg.min_trade_size:
                logger.debug("Skipping %s/%s: size %s too small", opp.market_id, opp.outcome, size)
                continue
            if opp.price <= ZERO:
                logger.debug("Skipping %s/%s: price %s", opp.market_id, opp.outcome, opp.price)
                continue

            trade = await self.open(opp, size, current.value, warnings)
            if trade is not None:
                opened.append(trade)
        return opened

    async def open(
        self,
        opportunity: Opportunity,
        size: Decimal,
        account: Account,
        warnings: list[str],
    ) -> Trade | None:
        """Buy *size* worth of *opportunity* against *account*.

        Returns ``None`` if the balance could not be debited, in which case
        nothing else is written.
        """
        shares = size / opportunity.price
        debited = await self._store.set_balance(account.balance - size)
        if not debited.ok:
            logger.warning("Abandoning buy of %s: %s", opportunity.key, debited.error)
            warnings.append(f"set_balance: {debited.error}")
            return None

        logger.info(
            "BUY %s @ %.3f | $%s | %s",
            opportunity.outcome,
            opportunity.price,
            size,
            opportunity.title,
        )

        trade = Trade.buy(opportunity, size, shares)
        appended = await self._store.append_trade(trade)
        recorded = appended.ok and bool(appended.value)
        if recorded:
            trade = trade.with_id(appended.value)
        else:
            warnings.append(f"append_trade: {appended.error}")

        upserted = await self._store.upsert_position(
            Position.opened_from(opportunity, size, shares)
        )
        if not upserted.ok:
            warnings.append(f"upsert_position {opportunity.key}: {upserted.error}")

        if recorded:
            context = await trade_context(self._store, reasons=list(opportunity.reasons))
            await record_thought(self._store, self._reasoner, trade, context, warnings)

        if self._event_bus is not None:
            self._event_bus.publish(
                PositionOpened(
                    source_id="entry_policy",
                    trade_id=trade.trade_id,
                    market_id=opportunity.market_id,
                    outcome=opportunity.outcome,
                    price=opportunity.price,
                    size=size,
                    reasons=opportunity.reasons,
                )
            )
        return trade
