"""Trading engine: the analysis cycle and the dashboard read model.

Each call to :meth:`TradingEngine.run_analysis_cycle` performs, in order:

1. **Refresh**: re-mark open positions with provider quotes.
2. **Exit**: close positions that hit an exit rule at the refreshed price.
3. **Entry**: open new positions from trending and newly listed markets.

No step is skipped because of the outcome of a previous one.  Provider and
storage failures are recorded as warnings on the returned
:class:`~polysim.domain.values.CycleReport`; anything unexpected aborts the
cycle with :class:`~polysim.domain.exceptions.CycleError`.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Mapping
from typing import Any

from polysim.domain.entities import Position
from polysim.domain.events import CycleCompleted
from polysim.domain.exceptions import CycleError, LedgerError
from polysim.domain.values import CycleReport, DashboardSnapshot, PositionView
from polysim.infrastructure.config import (
    ProviderConfig,
    ReasonerConfig,
    StorageConfig,
    TradingConfig,
)
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import LedgerStore, create_store
from polysim.infrastructure.market_data import MarketDataProvider, create_provider
from polysim.services.entry_policy import EntryPolicy
from polysim.services.exit_policy import ExitPolicy
from polysim.services.price_refresh import PriceRefresher
from polysim.services.reasoning import BaseReasoner, TemplateReasoner, create_reasoner

logger = logging.getLogger(__name__)


class TradingEngine:
    """Orchestrates one ledger, one market data provider, and one reasoner.

    Parameters
    ----------
    store:
        The ledger every transition is written to.
    provider:
        Source of prices and opportunities.
    reasoner:
        Narrates trades.  Defaults to :class:`TemplateReasoner`.
    config:
        Trading thresholds.  Defaults to :class:`TradingConfig`.
    rng:
        Shared source for every stochastic decision.  Pass a seeded
        ``random.Random`` or a scripted double for reproducible runs.
    event_bus:
        Optional bus receiving position and cycle events.
    """

    def __init__(
        self,
        store: LedgerStore,
        provider: MarketDataProvider,
        reasoner: BaseReasoner | None = None,
        config: TradingConfig | None = None,
        rng: random.Random | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.reasoner = reasoner or TemplateReasoner()
        self.config = config or TradingConfig()
        self.config.validate()
        self.rng = rng or random.Random()
        self.event_bus = event_bus

        self.refresher = PriceRefresher(store, provider, event_bus)
        self.exit_policy = ExitPolicy(store, self.reasoner, self.config, self.rng, event_bus)
        self.entry_policy = EntryPolicy(
            store, provider, self.reasoner, self.config, self.rng, event_bus
        )

    async def _positions(self, warnings: list[str]) -> list[Position]:
        result = await self.store.list_positions()
        if not result.ok:
            warnings.append(f"list_positions: {result.error}")
        return result.unwrap_or([])

    async def run_analysis_cycle(self) -> CycleReport:
        """Run refresh, exit, and entry once.

        Raises
        ------
        CycleError
            If an unexpected exception escapes any step.  The cause is
            chained; no partial report is returned.
        """
        report = CycleReport()
        logger.info("Starting analysis cycle")
        try:
            held = await self._positions(report.warnings)
            report.prices_refreshed = await self.refresher.refresh(held, report.warnings)

            repriced = await self._positions(report.warnings)
            report.closed = await self.exit_policy.run(repriced, report.warnings)

            report.opened = await self.entry_policy.run(report.warnings)
        except Exception as exc:
            logger.exception("Analysis cycle failed")
            raise CycleError(
                f"Analysis cycle failed: {exc}",
                details={"warnings": list(report.warnings)},
            ) from exc

        report.finished_at = time.time()
        logger.info(
            "Analysis complete: %d closed, %d opened, %d warnings (%.2fs)",
            len(report.closed),
            len(report.opened),
            len(report.warnings),
            report.elapsed_seconds,
        )
        if self.event_bus is not None:
            self.event_bus.publish(
                CycleCompleted(
                    source_id="engine",
                    opened=len(report.opened),
                    closed=len(report.closed),
                    warnings=len(report.warnings),
                    elapsed_seconds=report.elapsed_seconds,
                )
            )
        return report

    async def get_dashboard_snapshot(
        self,
        trades_limit: int | None = None,
        thoughts_limit: int | None = None,
    ) -> DashboardSnapshot:
        """Read stats, positions, and the recent logs without mutating anything.

        Raises
        ------
        LedgerError
            If the store cannot serve one of the reads.
        """
        if trades_limit is None:
            trades_limit = self.config.recent_trades_limit
        if thoughts_limit is None:
            thoughts_limit = self.config.recent_thoughts_limit

        stats = await self.store.get_stats()
        positions = await self.store.list_positions()
        trades = await self.store.list_trades(trades_limit)
        thoughts = await self.store.list_thoughts(thoughts_limit)
        for result in (stats, positions, trades, thoughts):
            if not result.ok:
                raise LedgerError(
                    f"Dashboard read failed: {result.error}", operation=result.operation
                )

        return DashboardSnapshot(
            stats=stats.value,
            positions=tuple(PositionView.of(p) for p in positions.unwrap_or([])),
            recent_trades=tuple(trades.unwrap_or([])),
            recent_thoughts=tuple(thoughts.unwrap_or([])),
        )


def create_engine(
    sections: Mapping[str, Any],
    rng: random.Random | None = None,
    event_bus: EventBus | None = None,
) -> TradingEngine:
    """Build an engine from typed config sections.

    *sections* is the mapping returned by
    :func:`~polysim.infrastructure.config.load_config_from_json`; missing
    sections fall back to their defaults.
    """
    trading = sections.get("trading") or TradingConfig()
    storage = sections.get("storage") or StorageConfig()
    provider = sections.get("provider") or ProviderConfig()
    reasoner = sections.get("reasoner") or ReasonerConfig()
    return TradingEngine(
        store=create_store(storage, trading.initial_balance),
        provider=create_provider(provider),
        reasoner=create_reasoner(reasoner),
        config=trading,
        rng=rng,
        event_bus=event_bus,
    )
