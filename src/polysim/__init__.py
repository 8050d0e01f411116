"""polysim -- paper-trading simulator for prediction markets.

Keeps a virtual cash account, open positions, and a trade and reasoning
log, and periodically decides whether to close positions or open new ones
from market price movements.
"""

__version__ = "0.1.0"

from polysim.services.engine import TradingEngine, create_engine

__all__ = [
    "TradingEngine",
    "create_engine",
]
