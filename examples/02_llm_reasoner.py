#!/usr/bin/env python3
"""Example 02: Narrating trades with an LLM reasoner.

Demonstrates:
- LLMReasoner driven by a LangChain chat model with structured output
- Template fallback when the model fails
- Reading the thought log back from a SQLite ledger

Uses ``MockStructuredChatModel`` so no API key is needed.  To use a real
model, install ``polysim[anthropic]`` and pass ``ChatAnthropic(...)``.

Run:
    PYTHONPATH=src python examples/02_llm_reasoner.py
"""

from __future__ import annotations

import asyncio
import random

from polysim.infrastructure.ledger_store import SQLiteLedgerStore
from polysim.infrastructure.market_data import SimulatedMarketProvider
from polysim.services.engine import TradingEngine
from polysim.services.reasoning import LLMReasoner, ReasoningOutput
from polysim.testing import MockStructuredChatModel


async def run() -> None:
    model = MockStructuredChatModel(
        structured_responses=[
            ReasoningOutput(thought="Volume is surging and the price still looks cheap."),
            RuntimeError("rate limited"),
            ReasoningOutput(thought="Taking the gain before the market settles."),
        ]
    )
    store = SQLiteLedgerStore(":memory:")
    engine = TradingEngine(
        store=store,
        provider=SimulatedMarketProvider(seed=7),
        reasoner=LLMReasoner(model),
        rng=random.Random(7),
    )

    for _ in range(8):
        await engine.run_analysis_cycle()

    thoughts = (await store.list_thoughts()).unwrap_or([])
    print(f"{len(thoughts)} thoughts recorded:")
    for thought in thoughts:
        action = thought.action.value if thought.action else "NOTE"
        print(f"  [{action} {thought.outcome}] {thought.content}")
    store.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
