"""Public testing utilities for polysim.

Deterministic doubles for the engine's collaborators, usable in tests and
examples without network access or API keys.
"""

from polysim.testing.doubles import (
    FailingLedgerStore,
    RecordingReasoner,
    ScriptedRandom,
    StaticMarketProvider,
)
from polysim.testing.mock_llm import MockStructuredChatModel

__all__ = [
    "FailingLedgerStore",
    "MockStructuredChatModel",
    "RecordingReasoner",
    "ScriptedRandom",
    "StaticMarketProvider",
]
