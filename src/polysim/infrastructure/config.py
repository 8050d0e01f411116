"""Configuration dataclasses for polysim.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  Configs are **frozen** so a running
engine can never see its thresholds change underneath it.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from polysim.domain.values import to_decimal

_ENV_PREFIX = "POLYSIM_"


# ===================================================================== #
#  Trading Configuration                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class TradingConfig:
    """Thresholds and sizing rules for the decision engine.

    Attributes
    ----------
    initial_balance:
        Cash the account is seeded with on first read.
    max_position_size:
        Upper bound on the cash committed to a single buy.
    max_positions:
        Cap on simultaneously open positions.
    min_trade_size:
        Smallest buy the entry policy will place; new trades also require
        a balance of at least twice this amount.
    max_new_trades_per_cycle:
        Upper bound on buys attempted in one cycle.
    entry_accept_probability:
        Chance that a considered candidate is actually traded.
    min_position_fraction, max_position_fraction:
        Bounds of the uniform draw for the share of balance to commit.
    take_profit_pct:
        Close when unrealized P&L percent reaches this value.
    stop_loss_pct:
        Close when unrealized P&L percent falls to this value.
    near_resolution_price:
        Close when the current price exceeds this value.
    lock_in_probability:
        Chance of closing a profitable position that hit no other rule.
    recent_trades_limit, recent_thoughts_limit:
        Log lengths included in dashboard snapshots.
    """

    initial_balance: Decimal = Decimal("1500")
    max_position_size: Decimal = Decimal("200")
    max_positions: int = 10
    min_trade_size: Decimal = Decimal("30")
    max_new_trades_per_cycle: int = 2
    entry_accept_probability: float = 0.4
    min_position_fraction: float = 0.05
    max_position_fraction: float = 0.15
    take_profit_pct: Decimal = Decimal("30")
    stop_loss_pct: Decimal = Decimal("-25")
    near_resolution_price: Decimal = Decimal("0.90")
    lock_in_probability: float = 0.05
    recent_trades_limit: int = 20
    recent_thoughts_limit: int = 10

    def __post_init__(self) -> None:
        # frozen=True prevents normal assignment; coerce numeric inputs
        # (ints, floats, strings from JSON or env) into Decimal.
        for name in (
            "initial_balance",
            "max_position_size",
            "min_trade_size",
            "take_profit_pct",
            "stop_loss_pct",
            "near_resolution_price",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.initial_balance < 0:
            raise ValueError(
                f"initial_balance must be >= 0, got {self.initial_balance}"
            )
        if self.min_trade_size <= 0:
            raise ValueError(
                f"min_trade_size must be > 0, got {self.min_trade_size}"
            )
        if self.max_position_size < self.min_trade_size:
            raise ValueError(
                f"max_position_size ({self.max_position_size}) must be >= "
                f"min_trade_size ({self.min_trade_size})"
            )
        if self.max_positions < 1:
            raise ValueError(f"max_positions must be >= 1, got {self.max_positions}")
        if self.max_new_trades_per_cycle < 0:
            raise ValueError(
                f"max_new_trades_per_cycle must be >= 0, "
                f"got {self.max_new_trades_per_cycle}"
            )
        for name in ("entry_accept_probability", "lock_in_probability"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if not (0.0 < self.min_position_fraction <= self.max_position_fraction <= 1.0):
            raise ValueError(
                "position fractions must satisfy 0 < min <= max <= 1, got "
                f"{self.min_position_fraction}..{self.max_position_fraction}"
            )
        if self.take_profit_pct <= 0:
            raise ValueError(
                f"take_profit_pct must be > 0, got {self.take_profit_pct}"
            )
        if self.stop_loss_pct >= 0:
            raise ValueError(f"stop_loss_pct must be < 0, got {self.stop_loss_pct}")
        if not (0 < self.near_resolution_price <= 1):
            raise ValueError(
                f"near_resolution_price must be in (0, 1], "
                f"got {self.near_resolution_price}"
            )
        if self.recent_trades_limit < 0 or self.recent_thoughts_limit < 0:
            raise ValueError("recent log limits must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return {
            k: (str(v) if isinstance(v, Decimal) else v)
            for k, v in asdict(self).items()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TradingConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: TradingConfig | None = None,
    ) -> TradingConfig:
        """Build a config from environment variables.

        ``INITIAL_BALANCE`` seeds the account; any other field can be set
        with a ``POLYSIM_`` prefixed upper-case name, e.g.
        ``POLYSIM_MAX_POSITIONS=5``.  Variables override *base* (a config
        file section, say) field by field.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get("INITIAL_BALANCE"):
            overrides["initial_balance"] = env["INITIAL_BALANCE"]
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if not raw:
                continue
            if f.type in ("int", int):
                overrides[f.name] = int(raw)
            elif f.type in ("float", float):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        cfg = replace(base or cls(), **overrides)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Storage Configuration                                                 #
# ===================================================================== #

_VALID_BACKENDS = frozenset({"memory", "sqlite"})


@dataclass(frozen=True)
class StorageConfig:
    """Which ledger store backs the engine.

    Attributes
    ----------
    backend:
        ``"memory"`` for a process-local store, ``"sqlite"`` for a file.
    path:
        SQLite database path.  Ignored by the memory backend.
    """

    backend: str = "sqlite"
    path: str = "polysim.db"

    def validate(self) -> None:
        if self.backend not in _VALID_BACKENDS:
            raise ValueError(
                f"backend must be one of {sorted(_VALID_BACKENDS)}, "
                f"got '{self.backend}'"
            )
        if self.backend == "sqlite" and not self.path:
            raise ValueError("path is required for the sqlite backend")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StorageConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Market Data Configuration                                             #
# ===================================================================== #

_VALID_PROVIDERS = frozenset({"simulated", "gamma"})


@dataclass(frozen=True)
class ProviderConfig:
    """Parameters for the market data provider.

    Attributes
    ----------
    kind:
        ``"simulated"`` random-walk markets or the live ``"gamma"`` API.
    base_url:
        Root of the Gamma REST API.
    timeout:
        HTTP timeout in seconds.
    limit:
        Markets requested per listing call.
    num_markets:
        Size of the simulated universe.
    seed:
        Seed for the simulated random walk (``None`` = nondeterministic).
    """

    kind: str = "simulated"
    base_url: str = "https://gamma-api.polymarket.com"
    timeout: float = 15.0
    limit: int = 20
    num_markets: int = 8
    seed: int | None = None

    def validate(self) -> None:
        if self.kind not in _VALID_PROVIDERS:
            raise ValueError(
                f"kind must be one of {sorted(_VALID_PROVIDERS)}, got '{self.kind}'"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
        if self.num_markets < 1:
            raise ValueError(f"num_markets must be >= 1, got {self.num_markets}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProviderConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Reasoning Configuration                                               #
# ===================================================================== #

_VALID_REASONERS = frozenset({"template", "anthropic", "openai"})


@dataclass(frozen=True)
class ReasonerConfig:
    """Which reasoning generator narrates trades.

    Attributes
    ----------
    kind:
        ``"template"`` (offline, deterministic) or an LLM backend.
    model:
        Model identifier for LLM backends.
    temperature:
        Sampling temperature for LLM calls.
    max_tokens:
        Maximum tokens per narrative.
    timeout:
        Seconds to wait for the model before falling back to the template.
    """

    kind: str = "template"
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 300
    timeout: float = 20.0

    def validate(self) -> None:
        if self.kind not in _VALID_REASONERS:
            raise ValueError(
                f"kind must be one of {sorted(_VALID_REASONERS)}, got '{self.kind}'"
            )
        if self.kind != "template" and not self.model:
            raise ValueError(f"model is required for kind='{self.kind}'")
        if not (0.0 <= self.temperature <= 2.0):
            raise ValueError(
                f"temperature must be in [0, 2], got {self.temperature}"
            )
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReasonerConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Unified config loader                                                 #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "trading": TradingConfig,
    "storage": StorageConfig,
    "provider": ProviderConfig,
    "reasoner": ReasonerConfig,
}


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    The JSON is expected to be an object whose top-level keys correspond to
    config section names (``trading``, ``storage``, ``provider``,
    ``reasoner``).  Unknown sections are preserved as raw dicts; missing
    sections get their defaults.
    """
    raw = json.loads(json_str)
    if not isinstance(raw, dict):
        raise ValueError("Top-level JSON must be an object")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    for section, cls in _CONFIG_MAP.items():
        result.setdefault(section, cls())
    return result


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read and parse a JSON config file.  See :func:`load_config_from_json`."""
    return load_config_from_json(Path(path).read_text(encoding="utf-8"))
