"""Price refresh: re-mark open positions with the provider's latest quotes."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from polysim.domain.entities import Position
from polysim.domain.events import PricesRefreshed
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import LedgerStore
from polysim.infrastructure.market_data import MarketDataProvider

logger = logging.getLogger(__name__)


class PriceRefresher:
    """Writes refreshed prices back through the ledger store.

    A position the provider has no quote for keeps its last known price.
    Balance and the trade log are never touched.
    """

    def __init__(
        self,
        store: LedgerStore,
        provider: MarketDataProvider,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._event_bus = event_bus

    async def refresh(
        self,
        positions: Sequence[Position],
        warnings: list[str] | None = None,
    ) -> int:
        """Refresh *positions* and return how many prices were rewritten.

        Provider failures, raised or returned, count as no quotes and are
        appended to *warnings* when given.
        """
        if not positions:
            return 0

        logger.info("Updating prices for %d positions", len(positions))
        try:
            quotes = await self._provider.refresh_prices(positions)
        except Exception as exc:
            logger.warning("Price refresh raised: %s", exc)
            if warnings is not None:
                warnings.append(f"refresh_prices: {exc}")
            return 0
        if not quotes.ok:
            logger.warning("Price refresh unavailable: %s", quotes.error)
            if warnings is not None:
                warnings.append(f"refresh_prices: {quotes.error}")
            return 0

        held = {p.key for p in positions}
        updated = 0
        for quote in quotes.unwrap_or([]):
            if quote.key not in held:
                continue
            if quote.price <= 0:
                logger.debug("Ignoring non-positive quote for %s: %s", quote.key, quote.price)
                continue
            result = await self._store.set_position_price(
                quote.market_id, quote.outcome, quote.price
            )
            if not result.ok:
                if warnings is not None:
                    warnings.append(f"set_position_price {quote.key}: {result.error}")
                continue
            if result.value is not None:
                updated += 1

        if self._event_bus is not None:
            self._event_bus.publish(
                PricesRefreshed(
                    source_id="price_refresh", requested=len(positions), updated=updated
                )
            )
        return updated
