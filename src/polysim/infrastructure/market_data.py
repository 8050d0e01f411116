"""Market data providers: live Polymarket Gamma API + simulated fallback.

A provider answers three questions for the engine: what are the current
prices of the positions we hold, which markets are trending, and which
markets were listed recently.  Every call returns a
:class:`~polysim.domain.values.Result`; a provider that cannot answer returns
a failed result and the engine treats it as "no data".
"""

from __future__ import annotations

import json
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx
from pydantic import BaseModel, Field, field_validator

from polysim.domain.entities import Position
from polysim.domain.exceptions import MarketDataError
from polysim.domain.values import Opportunity, PriceQuote, Result, to_decimal
from polysim.infrastructure.config import ProviderConfig

logger = logging.getLogger(__name__)

# Outcomes priced outside this band are effectively decided and not traded.
TRADABLE_MIN = Decimal("0.05")
TRADABLE_MAX = Decimal("0.95")

HIGH_VOLUME = Decimal("100000")
HIGH_LIQUIDITY = Decimal("50000")


def qualifying_reasons(
    price: Decimal,
    volume_24h: Decimal,
    liquidity: Decimal = Decimal("0"),
    is_new: bool = False,
) -> list[str]:
    """Return the signals that make an outcome worth considering.

    An empty list means the outcome is outside the tradable band.
    """
    if not (TRADABLE_MIN <= price <= TRADABLE_MAX):
        return []
    reasons: list[str] = []
    if volume_24h >= HIGH_VOLUME:
        reasons.append("high volume")
    if liquidity >= HIGH_LIQUIDITY:
        reasons.append("deep liquidity")
    if is_new:
        reasons.append("newly listed")
    if price < Decimal("0.35"):
        reasons.append("underdog pricing")
    elif price > Decimal("0.65"):
        reasons.append("strong favorite")
    else:
        reasons.append("balanced odds")
    return reasons


# ===================================================================== #
#  Provider contract                                                     #
# ===================================================================== #


class MarketDataProvider(ABC):
    """Abstract interface for fetching market data."""

    @abstractmethod
    async def refresh_prices(self, positions: Sequence[Position]) -> Result[list[PriceQuote]]:
        """Return fresh quotes for the held keys.  Missing keys are omitted."""

    @abstractmethod
    async def list_trending_opportunities(self) -> Result[list[Opportunity]]:
        """Return candidates from the most actively traded markets."""

    @abstractmethod
    async def list_new_opportunities(self) -> Result[list[Opportunity]]:
        """Return candidates from the most recently listed markets."""

    async def aclose(self) -> None:
        """Release any held resources."""

    async def __aenter__(self) -> MarketDataProvider:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


# ===================================================================== #
#  Simulated markets                                                     #
# ===================================================================== #


@dataclass
class SimulatedMarket:
    """One binary market in the simulated universe."""

    market_id: str
    slug: str
    question: str
    yes_price: Decimal
    volume_24h: Decimal
    listed_order: int

    @property
    def no_price(self) -> Decimal:
        return Decimal("1") - self.yes_price

    def price_of(self, outcome: str) -> Decimal | None:
        if outcome == "Yes":
            return self.yes_price
        if outcome == "No":
            return self.no_price
        return None


class SimulatedMarketProvider(MarketDataProvider):
    """Random-walk simulation for running without network access.

    Initializes *num_markets* binary markets with random YES prices.  Every
    call to :meth:`refresh_prices` or a listing method advances the walk by
    one step, so prices drift between analysis cycles.
    """

    QUESTIONS = [
        "Will BTC exceed $150k by end of 2026?",
        "Will the Fed cut rates at its next meeting?",
        "Will a major AI lab release a new frontier model this quarter?",
        "Will US GDP growth exceed 3% this year?",
        "Will there be a ceasefire in Ukraine by year end?",
        "Will Apple ship AR glasses this year?",
        "Will SpaceX attempt a crewed Starship flight this year?",
        "Will the S&P 500 close above 7000 this year?",
        "Will the EU fine a big tech firm over $1B this year?",
        "Will ETH flip BTC in daily volume this month?",
        "Will the next World Cup host be announced early?",
        "Will global temperatures set a new record this year?",
    ]

    def __init__(self, num_markets: int = 8, seed: int | None = None, limit: int = 20) -> None:
        self._rng = random.Random(seed)
        self._limit = limit
        self._markets: dict[str, SimulatedMarket] = {}
        for i in range(min(num_markets, len(self.QUESTIONS))):
            mid = f"sim-{i:03d}"
            self._markets[mid] = SimulatedMarket(
                market_id=mid,
                slug=f"sim-market-{i}",
                question=self.QUESTIONS[i],
                yes_price=self._quantize(self._rng.uniform(0.15, 0.85)),
                volume_24h=Decimal(str(round(self._rng.uniform(10_000, 500_000), 2))),
                listed_order=i,
            )

    @staticmethod
    def _quantize(value: float) -> Decimal:
        return Decimal(str(round(max(0.01, min(0.99, value)), 4)))

    @property
    def markets(self) -> list[SimulatedMarket]:
        return list(self._markets.values())

    def step(self) -> None:
        """Apply one random-walk step to every market."""
        for market in self._markets.values():
            drift = self._rng.gauss(0, 0.02)
            market.yes_price = self._quantize(float(market.yes_price) + drift)
            factor = Decimal(str(round(self._rng.uniform(0.9, 1.1), 4)))
            market.volume_24h = (market.volume_24h * factor).quantize(Decimal("0.01"))

    def _opportunities(self, markets: Sequence[SimulatedMarket], is_new: bool) -> list[Opportunity]:
        result: list[Opportunity] = []
        for market in markets:
            for outcome in ("Yes", "No"):
                price = market.price_of(outcome)
                reasons = qualifying_reasons(price, market.volume_24h, is_new=is_new)
                if not reasons:
                    continue
                result.append(
                    Opportunity(
                        market_id=market.market_id,
                        outcome=outcome,
                        price=price,
                        slug=market.slug,
                        title=market.question,
                        reasons=tuple(reasons),
                    )
                )
        return result

    async def refresh_prices(self, positions: Sequence[Position]) -> Result[list[PriceQuote]]:
        self.step()
        quotes: list[PriceQuote] = []
        for position in positions:
            market = self._markets.get(position.market_id)
            price = market.price_of(position.outcome) if market else None
            if price is None:
                logger.debug("No simulated price for %s", position.key)
                continue
            quotes.append(PriceQuote(position.market_id, position.outcome, price))
        return Result.success(quotes, "refresh_prices")

    async def list_trending_opportunities(self) -> Result[list[Opportunity]]:
        self.step()
        ranked = sorted(self._markets.values(), key=lambda m: m.volume_24h, reverse=True)
        return Result.success(
            self._opportunities(ranked[: self._limit], is_new=False),
            "list_trending_opportunities",
        )

    async def list_new_opportunities(self) -> Result[list[Opportunity]]:
        ranked = sorted(self._markets.values(), key=lambda m: m.listed_order, reverse=True)
        return Result.success(
            self._opportunities(ranked[: self._limit], is_new=True),
            "list_new_opportunities",
        )


# ===================================================================== #
#  Polymarket Gamma API                                                  #
# ===================================================================== #


class GammaMarket(BaseModel):
    """The subset of a Gamma ``/markets`` record the provider relies on."""

    id: str = Field(description="Market id")
    slug: str = Field(default="", description="URL slug")
    question: str = Field(default="", description="Market question")
    outcomes: list[str] = Field(default_factory=list, description="Outcome labels")
    outcome_prices: list[Decimal] = Field(
        default_factory=list,
        alias="outcomePrices",
        description="Per-outcome prices, aligned with outcomes",
    )
    volume_24h: Decimal = Field(default=Decimal("0"), alias="volume24hr")
    liquidity: Decimal = Field(default=Decimal("0"), alias="liquidityNum")
    active: bool = True
    closed: bool = False

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("outcomes", "outcome_prices", mode="before")
    @classmethod
    def _decode_json_list(cls, value: Any) -> Any:
        # Gamma encodes these arrays as JSON strings.
        if isinstance(value, str):
            return json.loads(value) if value else []
        return value

    @field_validator("volume_24h", "liquidity", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    def price_of(self, outcome: str) -> Decimal | None:
        for label, price in zip(self.outcomes, self.outcome_prices):
            if label == outcome:
                return price
        return None


class GammaMarketProvider(MarketDataProvider):
    """Read-only client for the public Polymarket Gamma REST API.

    Parameters
    ----------
    base_url:
        API root, ``https://gamma-api.polymarket.com`` by default.
    timeout:
        Per-request timeout in seconds.
    limit:
        Markets requested per listing call.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str = "https://gamma-api.polymarket.com",
        timeout: float = 15.0,
        limit: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._limit = limit
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_markets(self, **params: Any) -> list[GammaMarket]:
        query = {"limit": self._limit, "active": "true", "closed": "false", **params}
        resp = await self._client.get("/markets", params=query)
        resp.raise_for_status()
        payload = resp.json()
        if isinstance(payload, dict):
            payload = payload.get("data", [])
        if not isinstance(payload, list):
            raise MarketDataError(
                f"Unexpected /markets payload: {type(payload).__name__}", source="gamma"
            )
        return [GammaMarket.model_validate(item) for item in payload]

    async def _get_market(self, market_id: str) -> GammaMarket:
        resp = await self._client.get(f"/markets/{market_id}")
        resp.raise_for_status()
        return GammaMarket.model_validate(resp.json())

    @staticmethod
    def _opportunities(markets: Sequence[GammaMarket], is_new: bool) -> list[Opportunity]:
        result: list[Opportunity] = []
        for market in markets:
            if market.closed or not market.active:
                continue
            for outcome, price in zip(market.outcomes, market.outcome_prices):
                reasons = qualifying_reasons(
                    price, market.volume_24h, market.liquidity, is_new=is_new
                )
                if not reasons:
                    continue
                result.append(
                    Opportunity(
                        market_id=market.id,
                        outcome=outcome,
                        price=price,
                        slug=market.slug,
                        title=market.question,
                        reasons=tuple(reasons),
                    )
                )
        return result

    async def _list(self, operation: str, is_new: bool, **params: Any) -> Result[list[Opportunity]]:
        try:
            markets = await self._get_markets(**params)
        except (httpx.HTTPError, ValueError, MarketDataError) as exc:
            # pydantic.ValidationError and JSON decode errors are ValueErrors
            logger.warning("Gamma %s failed: %s", operation, exc)
            return Result.failure(exc, operation)
        return Result.success(self._opportunities(markets, is_new), operation)

    async def list_trending_opportunities(self) -> Result[list[Opportunity]]:
        return await self._list(
            "list_trending_opportunities", False, order="volume24hr", ascending="false"
        )

    async def list_new_opportunities(self) -> Result[list[Opportunity]]:
        return await self._list(
            "list_new_opportunities", True, order="startDate", ascending="false"
        )

    async def refresh_prices(self, positions: Sequence[Position]) -> Result[list[PriceQuote]]:
        cache: dict[str, GammaMarket | None] = {}
        quotes: list[PriceQuote] = []
        for position in positions:
            if position.market_id not in cache:
                try:
                    cache[position.market_id] = await self._get_market(position.market_id)
                except (httpx.HTTPError, ValueError, MarketDataError) as exc:
                    logger.warning(
                        "Gamma price lookup for %s failed: %s", position.market_id, exc
                    )
                    cache[position.market_id] = None
            market = cache[position.market_id]
            price = market.price_of(position.outcome) if market else None
            if price is None:
                continue
            quotes.append(PriceQuote(position.market_id, position.outcome, to_decimal(price)))
        return Result.success(quotes, "refresh_prices")


# ===================================================================== #
#  Factory                                                               #
# ===================================================================== #


def create_provider(config: ProviderConfig) -> MarketDataProvider:
    """Instantiate the market data provider described by *config*."""
    config.validate()
    if config.kind == "gamma":
        return GammaMarketProvider(
            base_url=config.base_url, timeout=config.timeout, limit=config.limit
        )
    return SimulatedMarketProvider(
        num_markets=config.num_markets, seed=config.seed, limit=config.limit
    )
