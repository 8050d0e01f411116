"""Ledger stores for polysim.

A ledger holds the single ``Account``, the open ``Position`` collection, and
the append-only ``Trade`` and ``Thought`` logs.  ``LedgerStore`` defines the
async contract the trading engine depends on; every public method returns a
:class:`~polysim.domain.values.Result` instead of raising, so storage
failures are logged once here and handed to the engine as data.

Concrete stores implement a small set of synchronous primitives:

InMemoryLedgerStore
    Process-local dicts and lists, serializable to JSON.
SQLiteLedgerStore
    A stdlib ``sqlite3`` database; blocking calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal
from typing import Any, TypeVar

from polysim.domain.entities import Account, Position, Thought, Trade
from polysim.domain.values import Result, TradingStats, money
from polysim.infrastructure.config import StorageConfig
from polysim.infrastructure.serialization import (
    account_from_dict,
    account_to_dict,
    decimal_str,
    position_from_dict,
    position_to_dict,
    thought_from_dict,
    thought_to_dict,
    trade_from_dict,
    trade_to_dict,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INITIAL_BALANCE = Decimal("1500")


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


# ===================================================================== #
#  Abstract store                                                        #
# ===================================================================== #


class LedgerStore(ABC):
    """Async contract for the ledger.

    All operations except :meth:`append_trade` and :meth:`append_thought`
    are safe to retry.  The two append operations create a new identity on
    every call and must be invoked exactly once per logical event.

    Parameters
    ----------
    initial_balance:
        Balance the account is created with on first read.
    """

    def __init__(self, initial_balance: Decimal | float | int | str = DEFAULT_INITIAL_BALANCE) -> None:
        self._initial_balance = money(initial_balance)

    @property
    def initial_balance(self) -> Decimal:
        return self._initial_balance

    def close(self) -> None:
        """Release any held resources."""

    # -- primitives (synchronous, may raise) --------------------------------

    @abstractmethod
    def _load_account(self) -> Account | None:
        """Return the stored account, or ``None`` if it was never created."""

    @abstractmethod
    def _save_account(self, account: Account) -> None:
        """Insert or replace the singleton account."""

    @abstractmethod
    def _load_positions(self) -> list[Position]:
        """Return all positions, most recently created first."""

    @abstractmethod
    def _load_position(self, market_id: str, outcome: str) -> Position | None:
        """Return the position for a key, or ``None``."""

    @abstractmethod
    def _save_position(self, position: Position) -> None:
        """Insert or replace the position stored under ``position.key``."""

    @abstractmethod
    def _remove_position(self, market_id: str, outcome: str) -> bool:
        """Delete a position. Returns ``True`` if it existed."""

    @abstractmethod
    def _insert_trade(self, trade: Trade) -> None:
        """Append a trade that already carries its id."""

    @abstractmethod
    def _load_trade(self, trade_id: str) -> Trade | None:
        """Return a single trade by id, or ``None``."""

    @abstractmethod
    def _load_trades(self, limit: int | None) -> list[Trade]:
        """Return trades most recent first, at most *limit* of them."""

    @abstractmethod
    def _insert_thought(self, thought: Thought) -> None:
        """Append a thought that already carries its id."""

    @abstractmethod
    def _load_thoughts(self, limit: int | None) -> list[Thought]:
        """Return thoughts most recent first, at most *limit* of them."""

    # -- execution ----------------------------------------------------------

    async def _execute(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a primitive.  Blocking stores override this to use a thread."""
        return fn(*args)

    async def _call(self, operation: str, fn: Callable[..., T], *args: Any) -> Result[T]:
        try:
            value = await self._execute(fn, *args)
        except Exception as exc:
            logger.warning("%s.%s failed: %s", type(self).__name__, operation, exc)
            return Result.failure(exc, operation)
        return Result.success(value, operation)

    # -- composite primitives -----------------------------------------------

    def _account_or_create(self) -> Account:
        account = self._load_account()
        if account is None:
            account = Account.opened_with(self._initial_balance)
            self._save_account(account)
            logger.info("Created account with initial balance %s", account.balance)
        return account

    def _write_balance(self, balance: Decimal) -> Account:
        account = self._account_or_create().with_balance(balance)
        self._save_account(account)
        return account

    def _merge_position(self, position: Position) -> Position:
        existing = self._load_position(position.market_id, position.outcome)
        stored = existing.merged_with(position) if existing is not None else position
        self._save_position(stored)
        return stored

    def _reprice_position(self, market_id: str, outcome: str, price: Decimal) -> Position | None:
        existing = self._load_position(market_id, outcome)
        if existing is None:
            return None
        updated = existing.with_price(price)
        self._save_position(updated)
        return updated

    def _record_trade(self, trade: Trade) -> str:
        trade_id = _new_id()
        self._insert_trade(trade.with_id(trade_id))
        return trade_id

    def _record_thought(self, trade_id: str, content: str) -> Thought:
        trade = self._load_trade(trade_id)
        if trade is not None:
            thought = Thought.about(trade, content)
        else:
            thought = Thought(trade_id=trade_id, content=content)
        thought = dataclasses.replace(thought, thought_id=_new_id())
        self._insert_thought(thought)
        return thought

    # -- public API ---------------------------------------------------------

    async def get_account(self) -> Result[Account]:
        """Return the account, creating it with the initial balance if absent."""
        return await self._call("get_account", self._account_or_create)

    async def set_balance(self, balance: Decimal) -> Result[Account]:
        return await self._call("set_balance", self._write_balance, balance)

    async def list_positions(self) -> Result[list[Position]]:
        return await self._call("list_positions", self._load_positions)

    async def get_position(self, market_id: str, outcome: str) -> Result[Position]:
        """Return the position for a key; the value is ``None`` when absent."""
        return await self._call("get_position", self._load_position, market_id, outcome)

    async def upsert_position(self, position: Position) -> Result[Position]:
        """Insert *position*, or merge it into the existing one for its key."""
        return await self._call("upsert_position", self._merge_position, position)

    async def delete_position(self, market_id: str, outcome: str) -> Result[bool]:
        return await self._call("delete_position", self._remove_position, market_id, outcome)

    async def set_position_price(
        self, market_id: str, outcome: str, price: Decimal
    ) -> Result[Position]:
        """Re-mark a position.  A missing key is a successful no-op (value ``None``)."""
        return await self._call(
            "set_position_price", self._reprice_position, market_id, outcome, price
        )

    async def append_trade(self, trade: Trade) -> Result[str]:
        """Append *trade* to the log and return its new id."""
        return await self._call("append_trade", self._record_trade, trade)

    async def list_trades(self, limit: int | None = None) -> Result[list[Trade]]:
        return await self._call("list_trades", self._load_trades, limit)

    async def append_thought(self, trade_id: str, content: str) -> Result[Thought]:
        """Attach a reasoning note to a trade, snapshotting the trade's labels."""
        return await self._call("append_thought", self._record_thought, trade_id, content)

    async def list_thoughts(self, limit: int | None = None) -> Result[list[Thought]]:
        return await self._call("list_thoughts", self._load_thoughts, limit)

    async def get_stats(self) -> Result[TradingStats]:
        """Derive aggregate statistics from the full trade log and positions."""
        from polysim.services.stats import compute_stats

        def _stats() -> TradingStats:
            return compute_stats(
                self._load_trades(None), self._load_positions(), self._account_or_create()
            )

        return await self._call("get_stats", _stats)


# ===================================================================== #
#  In-memory store                                                       #
# ===================================================================== #


class InMemoryLedgerStore(LedgerStore):
    """Process-local ledger, the default for tests and dry runs.

    Can be snapshotted with :meth:`to_dict` / :meth:`to_json` and restored
    with :meth:`from_dict` / :meth:`from_json`.
    """

    def __init__(self, initial_balance: Decimal | float | int | str = DEFAULT_INITIAL_BALANCE) -> None:
        super().__init__(initial_balance)
        self._account: Account | None = None
        self._positions: dict[tuple[str, str], Position] = {}
        self._trades: list[Trade] = []
        self._thoughts: list[Thought] = []

    def _load_account(self) -> Account | None:
        return self._account

    def _save_account(self, account: Account) -> None:
        self._account = account

    def _load_positions(self) -> list[Position]:
        return list(reversed(self._positions.values()))

    def _load_position(self, market_id: str, outcome: str) -> Position | None:
        return self._positions.get((market_id, outcome))

    def _save_position(self, position: Position) -> None:
        self._positions[position.key] = position

    def _remove_position(self, market_id: str, outcome: str) -> bool:
        return self._positions.pop((market_id, outcome), None) is not None

    def _insert_trade(self, trade: Trade) -> None:
        self._trades.append(trade)

    def _load_trade(self, trade_id: str) -> Trade | None:
        for trade in self._trades:
            if trade.trade_id == trade_id:
                return trade
        return None

    def _load_trades(self, limit: int | None) -> list[Trade]:
        newest_first = list(reversed(self._trades))
        return newest_first if limit is None else newest_first[:limit]

    def _insert_thought(self, thought: Thought) -> None:
        self._thoughts.append(thought)

    def _load_thoughts(self, limit: int | None) -> list[Thought]:
        newest_first = list(reversed(self._thoughts))
        return newest_first if limit is None else newest_first[:limit]

    # -- persistence --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dict for persistence."""
        return {
            "initial_balance": decimal_str(self._initial_balance),
            "account": account_to_dict(self._account) if self._account else None,
            "positions": [position_to_dict(p) for p in self._positions.values()],
            "trades": [trade_to_dict(t) for t in self._trades],
            "thoughts": [thought_to_dict(t) for t in self._thoughts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryLedgerStore:
        """Deserialize from a dict."""
        store = cls(data.get("initial_balance", DEFAULT_INITIAL_BALANCE))
        if data.get("account"):
            store._account = account_from_dict(data["account"])
        for d in data.get("positions", []):
            position = position_from_dict(d)
            store._positions[position.key] = position
        store._trades = [trade_from_dict(d) for d in data.get("trades", [])]
        store._thoughts = [thought_from_dict(d) for d in data.get("thoughts", [])]
        return store

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> InMemoryLedgerStore:
        return cls.from_dict(json.loads(json_str))


# ===================================================================== #
#  SQLite store                                                          #
# ===================================================================== #

_SCHEMA = """
CREATE TABLE IF NOT EXISTS account (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    balance TEXT NOT NULL,
    initial_balance TEXT NOT NULL,
    updated_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS positions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    outcome TEXT NOT NULL,
    market_slug TEXT NOT NULL DEFAULT '',
    market_title TEXT NOT NULL DEFAULT '',
    shares TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    current_price TEXT NOT NULL,
    invested TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    UNIQUE (market_id, outcome)
);
CREATE TABLE IF NOT EXISTS trades (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    trade_id TEXT NOT NULL UNIQUE,
    market_id TEXT NOT NULL,
    market_slug TEXT NOT NULL DEFAULT '',
    market_title TEXT NOT NULL DEFAULT '',
    outcome TEXT NOT NULL,
    action TEXT NOT NULL,
    shares TEXT NOT NULL,
    price TEXT NOT NULL,
    total TEXT NOT NULL,
    pnl TEXT NOT NULL,
    reason TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS thoughts (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    thought_id TEXT NOT NULL UNIQUE,
    trade_id TEXT NOT NULL,
    content TEXT NOT NULL,
    market_title TEXT NOT NULL DEFAULT '',
    action TEXT,
    outcome TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_thoughts_trade_id ON thoughts(trade_id);
"""

_POSITION_COLUMNS = (
    "market_id, outcome, market_slug, market_title, shares, entry_price, "
    "current_price, invested, created_at, updated_at"
)
_TRADE_COLUMNS = (
    "trade_id, market_id, market_slug, market_title, outcome, action, shares, "
    "price, total, pnl, reason, created_at"
)
_THOUGHT_COLUMNS = (
    "thought_id, trade_id, content, market_title, action, outcome, created_at"
)


class SQLiteLedgerStore(LedgerStore):
    """Ledger persisted in a SQLite database.

    Decimals are stored as TEXT to keep them exact.  A single connection is
    shared behind a lock; calls are dispatched with ``asyncio.to_thread`` so
    the event loop is never blocked.

    Parameters
    ----------
    path:
        Database file, or ``":memory:"`` for a throwaway database.
    initial_balance:
        Balance the account is created with on first read.
    """

    def __init__(
        self,
        path: str = "polysim.db",
        initial_balance: Decimal | float | int | str = DEFAULT_INITIAL_BALANCE,
    ) -> None:
        super().__init__(initial_balance)
        self.path = path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_SCHEMA)
        logger.debug("SQLiteLedgerStore opened: %s", path)

    async def _execute(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            return fn(*args)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- row mapping --------------------------------------------------------

    @staticmethod
    def _row_to_position(row: sqlite3.Row) -> Position:
        return position_from_dict(dict(row))

    @staticmethod
    def _row_to_trade(row: sqlite3.Row) -> Trade:
        return trade_from_dict(dict(row))

    @staticmethod
    def _row_to_thought(row: sqlite3.Row) -> Thought:
        return thought_from_dict(dict(row))

    # -- primitives ---------------------------------------------------------

    def _load_account(self) -> Account | None:
        row = self._conn.execute(
            "SELECT balance, initial_balance, updated_at FROM account WHERE id = 1"
        ).fetchone()
        return account_from_dict(dict(row)) if row is not None else None

    def _save_account(self, account: Account) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO account (id, balance, initial_balance, updated_at) "
                "VALUES (1, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET balance = excluded.balance, "
                "updated_at = excluded.updated_at",
                (
                    decimal_str(account.balance),
                    decimal_str(account.initial_balance),
                    account.updated_at,
                ),
            )

    def _load_positions(self) -> list[Position]:
        rows = self._conn.execute(
            f"SELECT {_POSITION_COLUMNS} FROM positions ORDER BY seq DESC"
        ).fetchall()
        return [self._row_to_position(r) for r in rows]

    def _load_position(self, market_id: str, outcome: str) -> Position | None:
        row = self._conn.execute(
            f"SELECT {_POSITION_COLUMNS} FROM positions WHERE market_id = ? AND outcome = ?",
            (market_id, outcome),
        ).fetchone()
        return self._row_to_position(row) if row is not None else None

    def _save_position(self, position: Position) -> None:
        d = position_to_dict(position)
        with self._conn:
            self._conn.execute(
                f"INSERT INTO positions ({_POSITION_COLUMNS}) "
                "VALUES (:market_id, :outcome, :market_slug, :market_title, :shares, "
                ":entry_price, :current_price, :invested, :created_at, :updated_at) "
                "ON CONFLICT(market_id, outcome) DO UPDATE SET "
                "market_slug = excluded.market_slug, "
                "market_title = excluded.market_title, "
                "shares = excluded.shares, "
                "entry_price = excluded.entry_price, "
                "current_price = excluded.current_price, "
                "invested = excluded.invested, "
                "updated_at = excluded.updated_at",
                d,
            )

    def _remove_position(self, market_id: str, outcome: str) -> bool:
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM positions WHERE market_id = ? AND outcome = ?",
                (market_id, outcome),
            )
        return cur.rowcount > 0

    def _insert_trade(self, trade: Trade) -> None:
        with self._conn:
            self._conn.execute(
                f"INSERT INTO trades ({_TRADE_COLUMNS}) "
                "VALUES (:trade_id, :market_id, :market_slug, :market_title, :outcome, "
                ":action, :shares, :price, :total, :pnl, :reason, :created_at)",
                trade_to_dict(trade),
            )

    def _load_trade(self, trade_id: str) -> Trade | None:
        row = self._conn.execute(
            f"SELECT {_TRADE_COLUMNS} FROM trades WHERE trade_id = ?", (trade_id,)
        ).fetchone()
        return self._row_to_trade(row) if row is not None else None

    def _load_trades(self, limit: int | None) -> list[Trade]:
        rows = self._conn.execute(
            f"SELECT {_TRADE_COLUMNS} FROM trades ORDER BY seq DESC LIMIT ?",
            (-1 if limit is None else limit,),
        ).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def _insert_thought(self, thought: Thought) -> None:
        with self._conn:
            self._conn.execute(
                f"INSERT INTO thoughts ({_THOUGHT_COLUMNS}) "
                "VALUES (:thought_id, :trade_id, :content, :market_title, :action, "
                ":outcome, :created_at)",
                thought_to_dict(thought),
            )

    def _load_thoughts(self, limit: int | None) -> list[Thought]:
        rows = self._conn.execute(
            f"SELECT {_THOUGHT_COLUMNS} FROM thoughts ORDER BY seq DESC LIMIT ?",
            (-1 if limit is None else limit,),
        ).fetchall()
        return [self._row_to_thought(r) for r in rows]


# ===================================================================== #
#  Factory                                                               #
# ===================================================================== #


def create_store(
    config: StorageConfig,
    initial_balance: Decimal | float | int | str = DEFAULT_INITIAL_BALANCE,
) -> LedgerStore:
    """Instantiate the ledger store described by *config*."""
    config.validate()
    if config.backend == "memory":
        return InMemoryLedgerStore(initial_balance)
    return SQLiteLedgerStore(config.path, initial_balance)


__all__ = [
    "DEFAULT_INITIAL_BALANCE",
    "InMemoryLedgerStore",
    "LedgerStore",
    "SQLiteLedgerStore",
    "create_store",
]
