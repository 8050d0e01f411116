"""Attach reasoning notes to recorded trades."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from polysim.domain.entities import Trade
from polysim.infrastructure.ledger_store import LedgerStore
from polysim.services.reasoning import BaseReasoner

logger = logging.getLogger(__name__)


async def trade_context(store: LedgerStore, **extra: Any) -> dict[str, Any]:
    """Current aggregate stats flattened for a reasoner, plus *extra*."""
    stats = await store.get_stats()
    context = stats.value.as_context() if stats.ok and stats.value else {}
    context.update(extra)
    return context


async def record_thought(
    store: LedgerStore,
    reasoner: BaseReasoner,
    trade: Trade,
    context: Mapping[str, Any],
    warnings: list[str],
) -> bool:
    """Narrate *trade* and append the text as a Thought.

    Returns ``True`` if a thought was stored.  An empty narrative stores
    nothing; a reasoner error is logged and treated the same way.
    """
    try:
        text = await reasoner.explain(
            trade.action, trade.market_title, trade.outcome, trade.price, context
        )
    except Exception as exc:
        logger.warning("Reasoner failed for trade %s: %s", trade.trade_id, exc)
        warnings.append(f"explain {trade.trade_id}: {exc}")
        return False

    text = (text or "").strip()
    if not text:
        logger.debug("No narrative for trade %s", trade.trade_id)
        return False

    result = await store.append_thought(trade.trade_id, text)
    if not result.ok:
        warnings.append(f"append_thought {trade.trade_id}: {result.error}")
        return False
    logger.info("[thought] %s", text)
    return True
