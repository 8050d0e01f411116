"""Reasoning generators that narrate trades.

A reasoner turns a trade description plus account context into a short
human-readable note.  The engine appends whatever text comes back to the
thought log; the narrative never influences a trading decision.

Two implementations ship:

TemplateReasoner
    Deterministic, offline text built from the context dict.
LLMReasoner
    A LangChain chat model with structured output, falling back to the
    template when the model errors or times out.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from polysim.domain.enums import TradeAction
from polysim.domain.exceptions import ReasoningError
from polysim.domain.values import to_decimal
from polysim.infrastructure.config import ReasonerConfig

logger = logging.getLogger(__name__)


class BaseReasoner(ABC):
    """Produces the narrative attached to a trade as a Thought."""

    @abstractmethod
    async def explain(
        self,
        action: TradeAction,
        market_title: str,
        outcome: str,
        price: Decimal,
        context: Mapping[str, Any],
    ) -> str:
        """Return narrative text.  An empty string means "no thought"."""


# -- Template ----------------------------------------------------------------


def _num(value: Any, places: int = 2) -> str:
    try:
        return f"{to_decimal(value):,.{places}f}"
    except (ValueError, TypeError):
        return str(value)


def _signed(value: Any) -> str:
    try:
        d = to_decimal(value)
    except (ValueError, TypeError):
        return str(value)
    return f"+{d:,.2f}" if d >= 0 else f"{d:,.2f}"


class TemplateReasoner(BaseReasoner):
    """Deterministic narrative built from the trade and its context.

    Never raises: a context it cannot read yields a shorter sentence.
    """

    async def explain(
        self,
        action: TradeAction,
        market_title: str,
        outcome: str,
        price: Decimal,
        context: Mapping[str, Any],
    ) -> str:
        return self.render(action, market_title, outcome, price, context)

    def render(
        self,
        action: TradeAction | str,
        market_title: str,
        outcome: str,
        price: Any,
        context: Mapping[str, Any] | None,
    ) -> str:
        title = market_title or "an unnamed market"
        try:
            ctx = dict(context or {})
            action = TradeAction(action)
        except (TypeError, ValueError):
            logger.debug("TemplateReasoner: unreadable context for %r", title)
            return f"{action} {outcome} on \"{title}\" at {_num(price, 3)}."

        if action == TradeAction.BUY:
            head = f"Bought {outcome} on \"{title}\" at {_num(price, 3)}."
            reasons = ctx.get("reasons") or ()
            if isinstance(reasons, str):
                reasons = [reasons]
            body = f" Signals: {', '.join(map(str, reasons))}." if reasons else ""
        else:
            reason = ctx.get("reason")
            head = f"Sold {outcome} on \"{title}\" at {_num(price, 3)}"
            head += f" ({reason})." if reason else "."
            body = f" Realized {_signed(ctx['pnl'])}." if "pnl" in ctx else ""

        tail = ""
        if "win_rate" in ctx and "wins" in ctx and "losses" in ctx:
            tail = (
                f" Record {ctx['wins']}W/{ctx['losses']}L,"
                f" win rate {_num(ctx['win_rate'], 1)}%."
            )
        if "balance" in ctx:
            tail += f" Cash {_num(ctx['balance'])}."
        return head + body + tail


# -- LLM ---------------------------------------------------------------------


class ReasoningOutput(BaseModel):
    """Structured output schema for trade narration."""

    thought: str = Field(description="Two or three sentences explaining the trade")


_REASONING_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are the inner voice of a paper-trading bot on prediction "
            "markets. Explain the trade just made in two or three short, "
            "confident sentences. Mention the price and the trigger. Do not "
            "give financial advice and do not invent facts beyond the context.",
        ),
        (
            "human",
            "## Trade\n"
            "**Action**: {action}\n"
            "**Market**: {market_title}\n"
            "**Outcome**: {outcome}\n"
            "**Price**: {price}\n\n"
            "## Context\n"
            "{context}\n\n"
            "Narrate this trade.",
        ),
    ]
)


def _format_context(context: Mapping[str, Any]) -> str:
    if not context:
        return "N/A"
    lines = []
    for key, value in context.items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(map(str, value))
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)


class LLMReasoner(BaseReasoner):
    """LLM narration using structured output.

    Parameters
    ----------
    model:
        A LangChain chat model (e.g. ``ChatAnthropic``, ``ChatOpenAI``).
    timeout:
        Seconds to wait for the model before using the fallback.
    fallback:
        Reasoner used when the model fails.  Defaults to
        :class:`TemplateReasoner`.
    prompt:
        Optional custom ``ChatPromptTemplate`` to replace the default.
    """

    def __init__(
        self,
        model: BaseChatModel,
        timeout: float = 20.0,
        fallback: BaseReasoner | None = None,
        prompt: ChatPromptTemplate | None = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.fallback = fallback or TemplateReasoner()
        self._prompt = prompt or _REASONING_PROMPT
        self._chain = self._prompt | self.model.with_structured_output(ReasoningOutput)

    async def explain(
        self,
        action: TradeAction,
        market_title: str,
        outcome: str,
        price: Decimal,
        context: Mapping[str, Any],
    ) -> str:
        try:
            result: ReasoningOutput = await asyncio.wait_for(
                self._chain.ainvoke(
                    {
                        "action": TradeAction(action).value,
                        "market_title": market_title or "Unknown market",
                        "outcome": outcome,
                        "price": str(price),
                        "context": _format_context(context),
                    }
                ),
                timeout=self.timeout,
            )
            thought = result.thought.strip()
            if thought:
                return thought
            logger.warning("LLMReasoner: empty narrative, using fallback")
        except Exception as exc:
            logger.warning("LLMReasoner: generation failed: %s", exc)
        return await self.fallback.explain(action, market_title, outcome, price, context)


# -- Factories ---------------------------------------------------------------


def build_chat_model(config: ReasonerConfig) -> BaseChatModel:
    """Instantiate the LangChain chat model named by *config*.

    The provider packages are optional extras and imported on demand.

    Raises
    ------
    ReasoningError
        If the provider package is not installed.
    """
    config.validate()
    try:
        if config.kind == "anthropic":
            from langchain_anthropic import ChatAnthropic

            return ChatAnthropic(
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
        if config.kind == "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
    except ImportError as exc:
        raise ReasoningError(
            f"Reasoner '{config.kind}' requires the polysim[{config.kind}] extra",
            details={"kind": config.kind, "model": config.model},
        ) from exc
    raise ReasoningError(f"No chat model for reasoner kind '{config.kind}'")


def create_reasoner(config: ReasonerConfig) -> BaseReasoner:
    """Instantiate the reasoner described by *config*."""
    config.validate()
    if config.kind == "template":
        return TemplateReasoner()
    return LLMReasoner(build_chat_model(config), timeout=config.timeout)
