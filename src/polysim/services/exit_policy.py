"""Exit policy: decide which open positions to close, and close them.

Rules are evaluated in a fixed priority order and the first match wins:

1. unrealized P&L percent at or above ``take_profit_pct``  -> take profit
2. unrealized P&L percent at or below ``stop_loss_pct``    -> cut loss
3. current price above ``near_resolution_price``           -> near resolution
4. positive P&L and a ``lock_in_probability`` draw          -> lock in gains

A sell always closes the whole position.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from polysim.domain.entities import Position, Trade
from polysim.domain.enums import ExitReason
from polysim.domain.events import PositionClosed
from polysim.domain.values import ZERO
from polysim.infrastructure.config import TradingConfig
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import LedgerStore
from polysim.services.journal import record_thought, trade_context
from polysim.services.reasoning import BaseReasoner

logger = logging.getLogger(__name__)


class ExitPolicy:
    """Evaluates positions against the closing rules and executes sells.

    Parameters
    ----------
    store:
        Ledger the sells are written to.
    reasoner:
        Narrates each sell.
    config:
        Thresholds; see :class:`~polysim.infrastructure.config.TradingConfig`.
    rng:
        Source for the lock-in draw.  Anything with a ``random()`` method.
    event_bus:
        Optional bus that receives :class:`PositionClosed`.
    """

    def __init__(
        self,
        store: LedgerStore,
        reasoner: BaseReasoner,
        config: TradingConfig | None = None,
        rng: random.Random | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._reasoner = reasoner
        self._config = config or TradingConfig()
        self._rng = rng or random.Random()
        self._event_bus = event_bus

    def evaluate(self, position: Position) -> ExitReason | None:
        """Return the first matching exit rule, or ``None`` to hold."""
        cfg = self._config
        pnl_percent = position.pnl_percent
        if pnl_percent >= cfg.take_profit_pct:
            return ExitReason.TAKE_PROFIT
        if pnl_percent <= cfg.stop_loss_pct:
            return ExitReason.CUT_LOSS
        if position.current_price > cfg.near_resolution_price:
            return ExitReason.NEAR_RESOLUTION
        if position.pnl > ZERO and self._rng.random() < cfg.lock_in_probability:
            return ExitReason.LOCK_IN_GAINS
        return None

    async def run(self, positions: Sequence[Position], warnings: list[str]) -> list[Trade]:
        """Evaluate every position in order and close the ones that trigger."""
        closed: list[Trade] = []
        for position in positions:
            reason = self.evaluate(position)
            logger.debug(
                "Exit check %s/%s pnl%%=%.2f price=%s -> %s",
                position.market_id,
                position.outcome,
                position.pnl_percent,
                position.current_price,
                reason.value if reason else "hold",
            )
            if reason is None:
                continue
            trade = await self.close(position, reason, warnings)
            if trade is not None:
                closed.append(trade)
        return closed

    async def close(
        self, position: Position, reason: ExitReason, warnings: list[str]
    ) -> Trade | None:
        """Sell *position* in full at its current price.

        Returns the recorded SELL trade, or ``None`` if the transition was
        abandoned because the account could not be read or credited.
        """
        account = await self._store.get_account()
        if not account.ok or account.value is None:
            warnings.append(f"get_account: {account.error}")
            return None

        trade = Trade.sell(position, reason)
        credited = await self._store.set_balance(account.value.balance + trade.total)
        if not credited.ok:
            logger.warning("Abandoning sell of %s: %s", position.key, credited.error)
            warnings.append(f"set_balance: {credited.error}")
            return None

        logger.info(
            "SELL %s @ %.3f | PnL: %s (%s)",
            position.outcome,
            position.current_price,
            trade.pnl,
            reason.value,
        )

        appended = await self._store.append_trade(trade)
        if appended.ok and appended.value:
            trade = trade.with_id(appended.value)
            context = await trade_context(self._store, pnl=trade.pnl, reason=reason.value)
            await record_thought(self._store, self._reasoner, trade, context, warnings)
        else:
            warnings.append(f"append_trade: {appended.error}")

        deleted = await self._store.delete_position(position.market_id, position.outcome)
        if not deleted.ok:
            warnings.append(f"delete_position {position.key}: {deleted.error}")

        if self._event_bus is not None:
            self._event_bus.publish(
                PositionClosed(
                    source_id="exit_policy",
                    trade_id=trade.trade_id,
                    market_id=trade.market_id,
                    outcome=trade.outcome,
                    price=trade.price,
                    pnl=trade.pnl,
                    reason=reason,
                )
            )
        return trade
