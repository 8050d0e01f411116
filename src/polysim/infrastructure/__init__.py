"""Infrastructure layer for polysim.

Re-exports the public API surface for convenience::

    from polysim.infrastructure import (
        EventBus, LedgerStore, InMemoryLedgerStore, SQLiteLedgerStore,
        MarketDataProvider, SimulatedMarketProvider, GammaMarketProvider,
        TradingConfig, StorageConfig, ProviderConfig, ReasonerConfig,
    )
"""

from polysim.infrastructure.config import (
    ProviderConfig,
    ReasonerConfig,
    StorageConfig,
    TradingConfig,
    load_config_file,
    load_config_from_json,
)
from polysim.infrastructure.event_bus import EventBus
from polysim.infrastructure.ledger_store import (
    InMemoryLedgerStore,
    LedgerStore,
    SQLiteLedgerStore,
    create_store,
)
from polysim.infrastructure.market_data import (
    GammaMarket,
    GammaMarketProvider,
    MarketDataProvider,
    SimulatedMarketProvider,
    create_provider,
)
from polysim.infrastructure.serialization import (
    deserialize,
    from_json,
    serialize,
    snapshot_to_dict,
    to_json,
)

__all__ = [
    # Config
    "ProviderConfig",
    "ReasonerConfig",
    "StorageConfig",
    "TradingConfig",
    "load_config_file",
    "load_config_from_json",
    # Event bus
    "EventBus",
    # Ledger
    "InMemoryLedgerStore",
    "LedgerStore",
    "SQLiteLedgerStore",
    "create_store",
    # Market data
    "GammaMarket",
    "GammaMarketProvider",
    "MarketDataProvider",
    "SimulatedMarketProvider",
    "create_provider",
    # Serialization
    "deserialize",
    "from_json",
    "serialize",
    "snapshot_to_dict",
    "to_json",
]
