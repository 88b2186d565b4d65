from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Tier(str, Enum):
    PENNY = "penny"
    LOW_VALUE = "low_value"
    MID_VALUE = "mid_value"
    BLUE_CHIP = "blue_chip"


class TrendDirection(str, Enum):
    BULL = "bull"
    BEAR = "bear"
    NEUTRAL = "neutral"


class Sector(str, Enum):
    NONE = "none"
    TECH = "tech"
    ENERGY = "energy"
    HEALTH = "health"
    FINANCE = "finance"
    CONSUMER = "consumer"
    INDUSTRIAL = "industrial"
    CRYPTO = "crypto"


class MarketEventType(str, Enum):
    EARNINGS_BEAT = "earnings_beat"
    EARNINGS_MISS = "earnings_miss"
    PUMP_AND_DUMP = "pump_and_dump"
    SEC_INVESTIGATION = "sec_investigation"
    SECTOR_ROTATION = "sector_rotation"
    MERGER_RUMOR = "merger_rumor"
    MARKET_CRASH = "market_crash"
    BULL_RUN = "bull_run"
    FLASH_CRASH = "flash_crash"
    SHORT_SQUEEZE = "short_squeeze"


@dataclass(frozen=True)
class PriceUpdated:
    stock_id: int
    new_price: float
    previous_price: float
    dt: float


@dataclass(frozen=True)
class RoundInitialized:
    round_index: int
    stock_ids: tuple[int, ...]
    tickers: tuple[str, ...]


@dataclass(frozen=True)
class MarketEventFired:
    event_type: str
    # None -> global event, every active stock is affected
    affected_stock_ids: Optional[tuple[int, ...]]
    price_effect_percent: float


@dataclass(frozen=True)
class MarketEventEnded:
    event_type: str
    affected_stock_ids: Optional[tuple[int, ...]]


@dataclass(frozen=True)
class StockDebugInfo:
    """
    Read-only view of one stock for diagnostics. Never fed back into the simulation.
    """

    stock_id: int
    ticker: str
    tier: Tier
    current_price: float
    trend_line_price: float
    trend_direction: TrendDirection
    trend_per_second: float
    noise_amplitude: float
    noise_accumulator: float
    reversion_speed: float
    has_active_event: bool = False
    active_event_type: Optional[str] = None
    event_time_remaining: Optional[float] = None
    sector: Sector = Sector.NONE
