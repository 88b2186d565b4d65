from __future__ import annotations

import random
from typing import Iterable, Optional

import pytest

from stocksim.bus import EventBus
from stocksim.catalog import TierCatalog
from stocksim.config import DEFAULT_POOLS, DEFAULT_TIERS, TierConfig
from stocksim.generator import PriceGenerator
from stocksim.instance import StockInstance
from stocksim.schemas import Tier, TrendDirection


class ScriptedRng:
    """
    Stand-in for random.Random that replays fixed draws.
    Falls back to a seeded Random once a script runs out.
    """

    def __init__(
        self,
        uniforms: Iterable[float] = (),
        ints: Iterable[int] = (),
        rolls: Iterable[int] = (),
        seed: int = 0,
    ) -> None:
        self._uniforms = list(uniforms)
        self._ints = list(ints)
        self._rolls = list(rolls)
        self._fallback = random.Random(seed)

    def uniform(self, a: float, b: float) -> float:
        if self._uniforms:
            return self._uniforms.pop(0)
        return self._fallback.uniform(a, b)

    def randint(self, a: int, b: int) -> int:
        if self._ints:
            return self._ints.pop(0)
        return self._fallback.randint(a, b)

    def randrange(self, n: int) -> int:
        if self._rolls:
            return self._rolls.pop(0)
        return self._fallback.randrange(n)


def make_tier(**overrides) -> TierConfig:
    return DEFAULT_TIERS[Tier.PENNY].model_copy(update=overrides)


def make_stock(
    tier_config: Optional[TierConfig] = None,
    price: float = 10.0,
    direction: TrendDirection = TrendDirection.NEUTRAL,
    strength: float = 0.0,
    stock_id: int = 0,
) -> StockInstance:
    return StockInstance.initialize(
        stock_id=stock_id,
        ticker_symbol="TEST",
        tier=Tier.PENNY,
        tier_config=tier_config or make_tier(),
        starting_price=price,
        trend_direction=direction,
        trend_strength=strength,
    )


@pytest.fixture
def catalog() -> TierCatalog:
    return TierCatalog(tiers=DEFAULT_TIERS, pools=DEFAULT_POOLS)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def generator(catalog, bus) -> PriceGenerator:
    return PriceGenerator(catalog=catalog, rng=random.Random(1234), bus=bus)


@pytest.fixture
def scripted_rng():
    return ScriptedRng


@pytest.fixture
def tier_factory():
    return make_tier


@pytest.fixture
def stock_factory():
    return make_stock
