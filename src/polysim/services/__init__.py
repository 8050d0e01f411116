"""Service layer for polysim.

Re-exports public service types for convenient top-level access::

    from polysim.services import (
        TradingEngine, create_engine,
        PriceRefresher, ExitPolicy, EntryPolicy,
        BaseReasoner, TemplateReasoner, LLMReasoner,
        compute_stats,
    )
"""

from polysim.services.engine import TradingEngine, create_engine
from polysim.services.entry_policy import EntryPolicy, merge_candidates
from polysim.services.exit_policy import ExitPolicy
from polysim.services.journal import record_thought, trade_context
from polysim.services.price_refresh import PriceRefresher
from polysim.services.reasoning import (
    BaseReasoner,
    LLMReasoner,
    ReasoningOutput,
    TemplateReasoner,
    build_chat_model,
    create_reasoner,
)
from polysim.services.stats import compute_stats, win_rate

__all__ = [
    # Engine
    "TradingEngine",
    "create_engine",
    # Policies
    "EntryPolicy",
    "ExitPolicy",
    "PriceRefresher",
    "merge_candidates",
    # Reasoning
    "BaseReasoner",
    "LLMReasoner",
    "ReasoningOutput",
    "TemplateReasoner",
    "build_chat_model",
    "create_reasoner",
    "record_thought",
    "trade_context",
    # Stats
    "compute_stats",
    "win_rate",
]
