from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from stocksim.config import TierConfig
from stocksim.schemas import Sector, Tier, TrendDirection

if TYPE_CHECKING:
    from stocksim.effects.market import MarketEvent


@dataclass
class StockInstance:
    """
    Runtime state for one stock during one round.

    `trend_line_price` only ever moves by the deterministic trend, so it is the
    target mean reversion pulls `current_price` back toward.
    """

    stock_id: int
    ticker_symbol: str
    tier: Tier
    tier_config: TierConfig
    current_price: float
    trend_line_price: float
    trend_direction: TrendDirection
    trend_per_second: float
    noise_amplitude: float
    noise_frequency: float
    noise_accumulator: float = 0.0
    sector: Sector = Sector.NONE
    active_event: Optional["MarketEvent"] = None
    event_start_price: float = 0.0
    event_target_price: float = 0.0

    @classmethod
    def initialize(
        cls,
        stock_id: int,
        ticker_symbol: str,
        tier: Tier,
        tier_config: TierConfig,
        starting_price: float,
        trend_direction: TrendDirection,
        trend_strength: float,
        sector: Sector = Sector.NONE,
    ) -> "StockInstance":
        # trend_strength is a fraction of the starting price per second
        if trend_direction == TrendDirection.BULL:
            trend_per_second = starting_price * trend_strength
        elif trend_direction == TrendDirection.BEAR:
            trend_per_second = -starting_price * trend_strength
        else:
            trend_per_second = 0.0

        return cls(
            stock_id=stock_id,
            ticker_symbol=ticker_symbol,
            tier=tier,
            tier_config=tier_config,
            current_price=float(starting_price),
            trend_line_price=float(starting_price),
            trend_direction=trend_direction,
            trend_per_second=float(trend_per_second),
            noise_amplitude=tier_config.noise_amplitude,
            noise_frequency=tier_config.noise_frequency,
            sector=sector,
        )

    def update_trend_line(self, dt: float) -> None:
        self.trend_line_price += self.trend_per_second * dt

    def apply_event(self, event: "MarketEvent", target_price: float) -> None:
        self.active_event = event
        self.event_start_price = self.current_price
        self.event_target_price = float(target_price)

    def clear_event(self) -> None:
        self.active_event = None
        self.event_start_price = 0.0
        self.event_target_price = 0.0
