"""Serialization utilities for polysim.

Provides ``to_dict`` / ``from_dict`` conversion for ledger entities and the
read-side projections built from them.

Conventions:
- Every ``to_dict`` output is JSON-serializable.
- Decimals are written as fixed-point strings so no precision is lost.
- Entity timestamps stay epoch floats; snapshot and report timestamps are
  additionally rendered as ISO-8601 UTC strings for display.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from polysim.domain.entities import Account, Position, Thought, Trade
from polysim.domain.enums import TradeAction
from polysim.domain.values import (
    CycleReport,
    DashboardSnapshot,
    PositionView,
    TradingStats,
    to_decimal,
)
from polysim.infrastructure.config import (
    ProviderConfig,
    ReasonerConfig,
    StorageConfig,
    TradingConfig,
)

# =========================================================================== #
#  Generic helpers                                                             #
# =========================================================================== #


def decimal_str(value: Decimal) -> str:
    """Render a decimal in plain fixed-point notation (never exponent form)."""
    return format(value, "f")


def iso_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _opt_float(data: dict[str, Any], key: str) -> dict[str, float]:
    """Return ``{key: float}`` when *key* is present, for dataclass defaults."""
    if data.get(key) is None:
        return {}
    return {key: float(data[key])}


# =========================================================================== #
#  Entities                                                                    #
# =========================================================================== #


def account_to_dict(account: Account) -> dict[str, Any]:
    return {
        "balance": decimal_str(account.balance),
        "initial_balance": decimal_str(account.initial_balance),
        "updated_at": account.updated_at,
    }


def account_from_dict(data: dict[str, Any]) -> Account:
    return Account(
        balance=to_decimal(data["balance"]),
        initial_balance=to_decimal(data["initial_balance"]),
        **_opt_float(data, "updated_at"),
    )


def position_to_dict(position: Position) -> dict[str, Any]:
    return {
        "market_id": position.market_id,
        "market_slug": position.market_slug,
        "market_title": position.market_title,
        "outcome": position.outcome,
        "shares": decimal_str(position.shares),
        "entry_price": decimal_str(position.entry_price),
        "current_price": decimal_str(position.current_price),
        "invested": decimal_str(position.invested),
        "created_at": position.created_at,
        "updated_at": position.updated_at,
    }


def position_from_dict(data: dict[str, Any]) -> Position:
    return Position(
        market_id=str(data["market_id"]),
        outcome=str(data["outcome"]),
        shares=to_decimal(data["shares"]),
        entry_price=to_decimal(data["entry_price"]),
        current_price=to_decimal(data["current_price"]),
        invested=to_decimal(data["invested"]),
        market_slug=str(data.get("market_slug") or ""),
        market_title=str(data.get("market_title") or ""),
        **_opt_float(data, "created_at"),
        **_opt_float(data, "updated_at"),
    )


def trade_to_dict(trade: Trade) -> dict[str, Any]:
    return {
        "trade_id": trade.trade_id,
        "market_id": trade.market_id,
        "market_slug": trade.market_slug,
        "market_title": trade.market_title,
        "outcome": trade.outcome,
        "action": trade.action.value,
        "shares": decimal_str(trade.shares),
        "price": decimal_str(trade.price),
        "total": decimal_str(trade.total),
        "pnl": decimal_str(trade.pnl),
        "reason": trade.reason,
        "created_at": trade.created_at,
    }


def trade_from_dict(data: dict[str, Any]) -> Trade:
    return Trade(
        trade_id=str(data.get("trade_id") or ""),
        market_id=str(data["market_id"]),
        market_slug=str(data.get("market_slug") or ""),
        market_title=str(data.get("market_title") or ""),
        outcome=str(data["outcome"]),
        action=TradeAction(data["action"]),
        shares=to_decimal(data["shares"]),
        price=to_decimal(data["price"]),
        total=to_decimal(data["total"]),
        pnl=to_decimal(data.get("pnl") or 0),
        reason=str(data.get("reason") or ""),
        **_opt_float(data, "created_at"),
    )


def thought_to_dict(thought: Thought) -> dict[str, Any]:
    return {
        "thought_id": thought.thought_id,
        "trade_id": thought.trade_id,
        "content": thought.content,
        "market_title": thought.market_title,
        "action": thought.action.value if thought.action is not None else None,
        "outcome": thought.outcome,
        "created_at": thought.created_at,
    }


def thought_from_dict(data: dict[str, Any]) -> Thought:
    action = data.get("action")
    return Thought(
        thought_id=str(data.get("thought_id") or ""),
        trade_id=str(data["trade_id"]),
        content=str(data.get("content") or ""),
        market_title=str(data.get("market_title") or ""),
        action=TradeAction(action) if action else None,
        outcome=str(data.get("outcome") or ""),
        **_opt_float(data, "created_at"),
    )


# =========================================================================== #
#  Read-side projections                                                       #
# =========================================================================== #


def position_view_to_dict(view: PositionView) -> dict[str, Any]:
    d = position_to_dict(view.position)
    d.update(
        current_value=decimal_str(view.current_value),
        pnl=decimal_str(view.pnl),
        pnl_percent=decimal_str(view.pnl_percent),
    )
    return d


def stats_to_dict(stats: TradingStats) -> dict[str, Any]:
    return {
        "balance": decimal_str(stats.balance),
        "initial_balance": decimal_str(stats.initial_balance),
        "total_pnl": decimal_str(stats.total_pnl),
        "unrealized_pnl": decimal_str(stats.unrealized_pnl),
        "total_value": decimal_str(stats.total_value),
        "total_trades": stats.total_trades,
        "wins": stats.wins,
        "losses": stats.losses,
        "win_rate": decimal_str(stats.win_rate),
        "best_trade": trade_to_dict(stats.best_trade) if stats.best_trade else None,
        "worst_trade": trade_to_dict(stats.worst_trade) if stats.worst_trade else None,
        "active_positions": stats.active_positions,
    }


def snapshot_to_dict(snapshot: DashboardSnapshot) -> dict[str, Any]:
    return {
        "stats": stats_to_dict(snapshot.stats),
        "positions": [position_view_to_dict(v) for v in snapshot.positions],
        "trades": [trade_to_dict(t) for t in snapshot.recent_trades],
        "thoughts": [thought_to_dict(t) for t in snapshot.recent_thoughts],
        "timestamp": iso_timestamp(snapshot.timestamp),
    }


def cycle_report_to_dict(report: CycleReport) -> dict[str, Any]:
    return {
        "started_at": iso_timestamp(report.started_at),
        "finished_at": iso_timestamp(report.finished_at) if report.finished_at else None,
        "elapsed_seconds": report.elapsed_seconds,
        "prices_refreshed": report.prices_refreshed,
        "closed": [trade_to_dict(t) for t in report.closed],
        "opened": [trade_to_dict(t) for t in report.opened],
        "warnings": list(report.warnings),
    }


def config_to_dict(cfg: Any) -> dict[str, Any]:
    return cfg.to_dict()


# =========================================================================== #
#  Unified serializer                                                          #
# =========================================================================== #

# Maps type -> (to_dict_fn, from_dict_fn)
_SERIALIZERS: dict[type, tuple[Any, Any]] = {
    Account: (account_to_dict, account_from_dict),
    Position: (position_to_dict, position_from_dict),
    Trade: (trade_to_dict, trade_from_dict),
    Thought: (thought_to_dict, thought_from_dict),
    PositionView: (position_view_to_dict, None),
    TradingStats: (stats_to_dict, None),
    DashboardSnapshot: (snapshot_to_dict, None),
    CycleReport: (cycle_report_to_dict, None),
    TradingConfig: (config_to_dict, None),
    StorageConfig: (config_to_dict, None),
    ProviderConfig: (config_to_dict, None),
    ReasonerConfig: (config_to_dict, None),
}


def serialize(obj: Any) -> dict[str, Any]:
    """Serialize a known domain/infrastructure object to a dict.

    Raises ``TypeError`` for unsupported types.
    """
    ser = _SERIALIZERS.get(type(obj))
    if ser is None:
        raise TypeError(f"No serializer registered for {type(obj).__name__}")
    to_fn, _ = ser
    return to_fn(obj)


def deserialize(data: dict[str, Any], target_type: type) -> Any:
    """Deserialize a dict into *target_type*.

    For configs, use their ``from_dict`` classmethod directly.
    """
    ser = _SERIALIZERS.get(target_type)
    if ser is not None:
        _, from_fn = ser
        if from_fn is not None:
            return from_fn(data)
        if hasattr(target_type, "from_dict"):
            return target_type.from_dict(data)
    raise TypeError(f"No deserializer registered for {target_type.__name__}")


# =========================================================================== #
#  JSON helpers                                                                #
# =========================================================================== #


def to_json(obj: Any, *, indent: int | None = 2) -> str:
    """Serialize a domain/infra object to a JSON string."""
    return json.dumps(serialize(obj), indent=indent, default=str)


def from_json(json_str: str, target_type: type) -> Any:
    """Deserialize a JSON string into *target_type*."""
    return deserialize(json.loads(json_str), target_type)
