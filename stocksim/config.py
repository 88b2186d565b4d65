from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from stocksim.schemas import MarketEventType, Sector, Tier


class TierConfig(BaseModel):
    """
    Numeric parameters shared by every stock of one tier.

    Negative values are rejected. Inverted ranges (min above max) load fine and
    are tolerated by the round initializer.
    """

    model_config = ConfigDict(frozen=True)

    min_price: float = Field(ge=0.0)
    max_price: float = Field(ge=0.0)
    min_trend_strength: float = Field(ge=0.0)
    max_trend_strength: float = Field(ge=0.0)
    min_stocks_per_round: int = Field(ge=0)
    max_stocks_per_round: int = Field(ge=0)
    noise_amplitude: float = Field(ge=0.0)
    noise_frequency: float = Field(ge=0.0)
    mean_reversion_speed: float = Field(ge=0.0)
    event_frequency_modifier: float = Field(default=1.0, ge=0.0)


class StockDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticker_symbol: str
    display_name: str
    sector: Sector = Sector.NONE
    flavor_text: str = ""


def _defs(*rows: tuple[str, str, Sector, str]) -> list[StockDefinition]:
    return [
        StockDefinition(ticker_symbol=t, display_name=n, sector=s, flavor_text=f)
        for t, n, s, f in rows
    ]


DEFAULT_TIERS: dict[Tier, TierConfig] = {
    # $0.10-$5, very high volatility, very slow reversion, frequent events
    Tier.PENNY: TierConfig(
        min_price=0.10, max_price=5.0,
        min_trend_strength=0.05, max_trend_strength=0.20,
        min_stocks_per_round=3, max_stocks_per_round=4,
        noise_amplitude=0.08, noise_frequency=3.0,
        mean_reversion_speed=0.05,
        event_frequency_modifier=1.5,
    ),
    Tier.LOW_VALUE: TierConfig(
        min_price=5.0, max_price=50.0,
        min_trend_strength=0.03, max_trend_strength=0.12,
        min_stocks_per_round=3, max_stocks_per_round=4,
        noise_amplitude=0.05, noise_frequency=2.5,
        mean_reversion_speed=0.15,
        event_frequency_modifier=1.2,
    ),
    Tier.MID_VALUE: TierConfig(
        min_price=50.0, max_price=500.0,
        min_trend_strength=0.02, max_trend_strength=0.08,
        min_stocks_per_round=2, max_stocks_per_round=3,
        noise_amplitude=0.03, noise_frequency=2.0,
        mean_reversion_speed=0.30,
        event_frequency_modifier=1.0,
    ),
    # $500-$5000, low volatility, fast reversion, rare events
    Tier.BLUE_CHIP: TierConfig(
        min_price=500.0, max_price=5000.0,
        min_trend_strength=0.01, max_trend_strength=0.04,
        min_stocks_per_round=2, max_stocks_per_round=3,
        noise_amplitude=0.015, noise_frequency=1.5,
        mean_reversion_speed=0.60,
        event_frequency_modifier=0.5,
    ),
}

DEFAULT_POOLS: dict[Tier, list[StockDefinition]] = {
    Tier.PENNY: _defs(
        ("MEME", "MemeCoin Inc.", Sector.CRYPTO, "To the moon or to zero."),
        ("YOLO", "YOLO Ventures", Sector.NONE, "Life savings optional."),
        ("PUMP", "PumpCo Holdings", Sector.NONE, "Up 500% this week. Don't ask about last week."),
        ("FOMO", "FOMO Financial", Sector.FINANCE, "You're already late."),
        ("MOON", "Moonshot Labs", Sector.TECH, "Vaporware with a great logo."),
        ("HODL", "HODL Corp", Sector.CRYPTO, "Diamond hands only."),
        ("DOGE", "DogeChain Ltd", Sector.CRYPTO, "Much stock. Very volatile. Wow."),
        ("RICK", "Rick's Picks", Sector.CONSUMER, "Never gonna give you up."),
    ),
    Tier.LOW_VALUE: _defs(
        ("BREW", "BrewTech Distillery", Sector.CONSUMER, "Craft code and craft beer."),
        ("GEAR", "GearWorks Mfg", Sector.INDUSTRIAL, "They make things that make things."),
        ("BOLT", "Bolt Electric", Sector.ENERGY, "Shocking potential."),
        ("NEON", "Neon Dynamics", Sector.TECH, "Synthwave startup energy."),
        ("GRID", "GridLine Power", Sector.ENERGY, "Keeping the lights on, barely."),
        ("FLUX", "Flux Capacitors", Sector.INDUSTRIAL, "1.21 gigawatts of revenue."),
    ),
    Tier.MID_VALUE: _defs(
        ("NOVA", "Nova Systems", Sector.TECH, "Enterprise solutions nobody asked for."),
        ("VOLT", "Volt Power Corp", Sector.ENERGY, "Renewable promises, coal reality."),
        ("MDCR", "MedCore Health", Sector.HEALTH, "Your health is our quarterly target."),
        ("TRDE", "TradeLane Logistics", Sector.INDUSTRIAL, "Moving boxes, moving markets."),
        ("CHIP", "ChipForge Semi", Sector.TECH, "Silicon dreams and supply chain nightmares."),
        ("SOLR", "Solar Flare Energy", Sector.ENERGY, "Harnessing the sun, burning through cash."),
        ("GENX", "GenX Biotech", Sector.HEALTH, "Editing genes and investor expectations."),
    ),
    Tier.BLUE_CHIP: _defs(
        ("APEX", "Apex Global", Sector.FINANCE, "Too big to fail. Probably."),
        ("TITN", "Titan Industries", Sector.INDUSTRIAL, "Built different. Literally."),
        ("OMNI", "OmniCorp International", Sector.TECH, "We own everything you use."),
        ("VALT", "Vault Financial", Sector.FINANCE, "Where the big money sleeps."),
        ("CRWN", "Crown Pharma", Sector.HEALTH, "Healing the world, one patent at a time."),
        ("FRGE", "Forge Dynamics", Sector.INDUSTRIAL, "Forging the future, one merger at a time."),
    ),
}


class MarketConfig(BaseModel):
    tiers: dict[Tier, TierConfig] = Field(default_factory=lambda: dict(DEFAULT_TIERS))
    pools: dict[Tier, list[StockDefinition]] = Field(
        default_factory=lambda: {t: list(p) for t, p in DEFAULT_POOLS.items()}
    )

    # Tiers left out of the YAML keep the built-in tables.
    @field_validator("tiers")
    @classmethod
    def _fill_tiers(cls, v: dict[Tier, TierConfig]) -> dict[Tier, TierConfig]:
        return {**DEFAULT_TIERS, **v}

    @field_validator("pools")
    @classmethod
    def _fill_pools(cls, v: dict[Tier, list[StockDefinition]]) -> dict[Tier, list[StockDefinition]]:
        merged = {t: list(p) for t, p in DEFAULT_POOLS.items()}
        merged.update(v)
        return merged


class MarketEventDefinition(BaseModel):
    """
    Effect range, duration, tier availability and selection weight of one event type.

    Negative events list their ranges from mild to severe (min -0.15, max -0.30);
    the effect is drawn uniformly between the two either way.
    """

    model_config = ConfigDict(frozen=True)

    min_price_effect: float
    max_price_effect: float
    duration: float = Field(gt=0.0)
    tiers: list[Tier]
    rarity: float = Field(ge=0.0)


_ALL_TIERS = list(Tier)

DEFAULT_EVENT_DEFINITIONS: dict[MarketEventType, MarketEventDefinition] = {
    MarketEventType.EARNINGS_BEAT: MarketEventDefinition(
        min_price_effect=0.25, max_price_effect=0.50, duration=4.0, tiers=_ALL_TIERS, rarity=0.5,
    ),
    MarketEventType.EARNINGS_MISS: MarketEventDefinition(
        min_price_effect=-0.15, max_price_effect=-0.30, duration=4.0, tiers=_ALL_TIERS, rarity=0.5,
    ),
    MarketEventType.PUMP_AND_DUMP: MarketEventDefinition(
        min_price_effect=0.45, max_price_effect=0.90, duration=6.0, tiers=[Tier.PENNY], rarity=0.3,
    ),
    MarketEventType.SEC_INVESTIGATION: MarketEventDefinition(
        min_price_effect=-0.20, max_price_effect=-0.40, duration=6.0,
        tiers=[Tier.PENNY, Tier.LOW_VALUE], rarity=0.3,
    ),
    # winners gain and losers drop the same rolled percent, 10% up to max_price_effect
    MarketEventType.SECTOR_ROTATION: MarketEventDefinition(
        min_price_effect=-0.18, max_price_effect=0.18, duration=5.0,
        tiers=[Tier.MID_VALUE, Tier.BLUE_CHIP], rarity=0.4,
    ),
    MarketEventType.MERGER_RUMOR: MarketEventDefinition(
        min_price_effect=0.30, max_price_effect=0.60, duration=5.0,
        tiers=[Tier.MID_VALUE, Tier.BLUE_CHIP], rarity=0.3,
    ),
    MarketEventType.MARKET_CRASH: MarketEventDefinition(
        min_price_effect=-0.20, max_price_effect=-0.40, duration=6.0, tiers=_ALL_TIERS, rarity=0.15,
    ),
    MarketEventType.BULL_RUN: MarketEventDefinition(
        min_price_effect=0.35, max_price_effect=0.65, duration=6.0, tiers=_ALL_TIERS, rarity=0.15,
    ),
    MarketEventType.FLASH_CRASH: MarketEventDefinition(
        min_price_effect=-0.15, max_price_effect=-0.30, duration=3.0,
        tiers=[Tier.LOW_VALUE, Tier.MID_VALUE], rarity=0.25,
    ),
    MarketEventType.SHORT_SQUEEZE: MarketEventDefinition(
        min_price_effect=0.45, max_price_effect=1.00, duration=3.0, tiers=_ALL_TIERS, rarity=0.25,
    ),
}


class EventSchedulerConfig(BaseModel):
    enabled: bool = True
    # scheduled events spread over this much simulated time after a new round
    round_seconds: float = Field(default=60.0, gt=0.0)
    min_events: int = Field(default=5, ge=0)
    max_events: int = Field(default=7, ge=0)
    early_buffer_seconds: float = Field(default=2.0, ge=0.0)
    late_buffer_seconds: float = Field(default=2.0, ge=0.0)


class EventsConfig(BaseModel):
    scheduler: EventSchedulerConfig = Field(default_factory=EventSchedulerConfig)
    definitions: dict[MarketEventType, MarketEventDefinition] = Field(
        default_factory=lambda: dict(DEFAULT_EVENT_DEFINITIONS)
    )

    @field_validator("definitions")
    @classmethod
    def _fill_definitions(
        cls, v: dict[MarketEventType, MarketEventDefinition]
    ) -> dict[MarketEventType, MarketEventDefinition]:
        return {**DEFAULT_EVENT_DEFINITIONS, **v}


class SimulationConfig(BaseModel):
    seed: Optional[int] = None
    tick_seconds: float = Field(default=0.25, gt=0.0)
    # Tiers a round draws from; empty means every tier.
    round_tiers: list[Tier] = Field(default_factory=list)
    # Tiers whose stocks share one trend direction per sector.
    correlated_sector_tiers: list[Tier] = Field(default_factory=list)


class AppConfig(BaseModel):
    log_level: str = "INFO"


class Config(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    market: MarketConfig = Field(default_factory=MarketConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)


def load_config(config_path: str | Path) -> Config:
    p = Path(config_path)
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return Config.model_validate(data)
