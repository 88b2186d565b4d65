from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence

from stocksim.bus import EventBus
from stocksim.catalog import TierCatalog
from stocksim.config import StockDefinition
from stocksim.effects.base import EventEffects, NullEventEffects
from stocksim.instance import StockInstance
from stocksim.schemas import (
    PriceUpdated,
    RoundInitialized,
    Sector,
    StockDebugInfo,
    Tier,
    TrendDirection,
)


log = logging.getLogger(__name__)

# Applied once per tick regardless of dt, so the noise half-life depends on the
# tick rate: at 60 ticks/s the accumulator halves in ~0.57s, at 30 ticks/s in ~1.1s.
NOISE_DECAY = 0.98

# roll in [0, 100): < 40 bull, < 80 bear, else neutral
BULL_ROLL_BELOW = 40
BEAR_ROLL_BELOW = 80

# relative move below which a tick is reported as flat (debug only)
FLAT_THRESHOLD = 1e-5


class PriceGenerator:
    """
    Builds each round's stocks and advances their prices one tick at a time.

    Pipeline per tick: trend line -> trend -> noise -> event OR reversion -> floor.
    The RNG is injected so rounds and ticks are reproducible under a seed; it is
    consumed serially and must not be shared with concurrently ticking generators.
    """

    def __init__(
        self,
        catalog: TierCatalog,
        rng: Optional[random.Random] = None,
        effects: Optional[EventEffects] = None,
        bus: Optional[EventBus] = None,
        correlated_sector_tiers: Iterable[Tier] = (),
    ) -> None:
        self._catalog = catalog
        self._rng = rng if rng is not None else random.Random()
        self._effects: EventEffects = effects if effects is not None else NullEventEffects()
        self._bus = bus if bus is not None else EventBus()
        self._correlated = frozenset(correlated_sector_tiers)
        self._active: List[StockInstance] = []
        self._round_index = 0

    @property
    def active_stocks(self) -> tuple[StockInstance, ...]:
        return tuple(self._active)

    @property
    def round_index(self) -> int:
        return self._round_index

    @property
    def bus(self) -> EventBus:
        return self._bus

    def set_event_effects(self, effects: EventEffects) -> None:
        self._effects = effects

    def find_stock(self, stock_id: int) -> Optional[StockInstance]:
        for stock in self._active:
            if stock.stock_id == stock_id:
                return stock
        return None

    # ---- per tick ----

    def update_price(self, stock: StockInstance, dt: float) -> PriceUpdated:
        if dt < 0:
            raise ValueError(f"dt must be non-negative, got {dt}")

        previous_price = stock.current_price

        # Reversion target advances first, from pure trend only.
        stock.update_trend_line(dt)

        stock.current_price += stock.trend_per_second * dt

        # Smoothed random walk. Frequency scales how hard the walk is driven;
        # the effect on price is relative to the current price.
        u = self._rng.uniform(-1.0, 1.0)
        stock.noise_accumulator += u * stock.noise_frequency * dt
        stock.noise_accumulator *= NOISE_DECAY
        stock.current_price += stock.current_price * stock.noise_amplitude * stock.noise_accumulator * dt

        events = self._effects.active_events_for_stock(stock.stock_id)
        if events:
            # Events override reversion entirely and compound in order.
            for event in events:
                stock.current_price = self._effects.apply_event_effect(stock, event, dt)
        else:
            # t is not clamped: speed * dt >= 1 overshoots the trend line.
            t = stock.tier_config.mean_reversion_speed * dt
            stock.current_price = _lerp(stock.current_price, stock.trend_line_price, t)

        if stock.current_price < stock.tier_config.min_price:
            stock.current_price = stock.tier_config.min_price

        if dt > 0 and log.isEnabledFor(logging.DEBUG):
            delta = abs(stock.current_price - previous_price)
            if delta < stock.current_price * FLAT_THRESHOLD:
                log.debug(
                    "flat price detected %s: price=%.4f delta=%.6f trend/s=%.4f "
                    "trend_line=%.4f noise=%.6f events=%d dt=%.4f",
                    stock.ticker_symbol,
                    stock.current_price,
                    delta,
                    stock.trend_per_second,
                    stock.trend_line_price,
                    stock.noise_accumulator,
                    len(events),
                    dt,
                )

        update = PriceUpdated(
            stock_id=stock.stock_id,
            new_price=stock.current_price,
            previous_price=previous_price,
            dt=dt,
        )
        self._bus.publish(update)
        return update

    def update_all(self, dt: float) -> list[PriceUpdated]:
        return [self.update_price(stock, dt) for stock in self._active]

    # ---- per round ----

    def initialize_round(self, tiers: Optional[Iterable[Tier]] = None) -> tuple[StockInstance, ...]:
        """
        Replaces the active set with a fresh random selection.

        Tiers are processed in declaration order whatever order `tiers` is given in;
        stock ids run 0..n-1 across all of them.
        """
        wanted = set(Tier) if tiers is None else {Tier(t) for t in tiers}
        active: List[StockInstance] = []
        stock_id = 0

        for tier in Tier:
            if tier not in wanted:
                continue

            config = self._catalog.tier_config(tier)
            selections = self.select_stocks_for_round(tier)
            sector_trends = self._sector_trends(selections) if tier in self._correlated else {}

            for definition in selections:
                starting_price = self._rng.uniform(config.min_price, config.max_price)
                direction = sector_trends.get(definition.sector)
                if direction is None:
                    direction = self.pick_random_trend_direction()
                trend_strength = self._rng.uniform(config.min_trend_strength, config.max_trend_strength)

                stock = StockInstance.initialize(
                    stock_id=stock_id,
                    ticker_symbol=definition.ticker_symbol,
                    tier=tier,
                    tier_config=config,
                    starting_price=starting_price,
                    trend_direction=direction,
                    trend_strength=trend_strength,
                    sector=definition.sector,
                )
                active.append(stock)
                log.debug(
                    "stock initialized: %s %r (%s) @ %.2f, trend=%s strength=%.4f/s",
                    definition.ticker_symbol,
                    definition.display_name,
                    tier.value,
                    starting_price,
                    direction.value,
                    trend_strength,
                )
                stock_id += 1

        self._active = active
        self._round_index += 1
        log.info("round %d initialized with %d stocks", self._round_index, len(active))

        self._bus.publish(
            RoundInitialized(
                round_index=self._round_index,
                stock_ids=tuple(s.stock_id for s in active),
                tickers=tuple(s.ticker_symbol for s in active),
            )
        )
        return tuple(active)

    def select_stocks_for_round(self, tier: Tier) -> list[StockDefinition]:
        """
        Draws a duplicate-free subset of the tier's pool with a partial Fisher-Yates shuffle.
        Asking for more stocks than the pool holds yields the whole pool.
        """
        pool = self._catalog.pool(tier)
        config = self._catalog.tier_config(tier)

        lo = config.min_stocks_per_round
        hi = max(lo, config.max_stocks_per_round)
        count = min(self._rng.randint(lo, hi), len(pool))

        indices = list(range(len(pool)))
        selected: list[StockDefinition] = []
        for i in range(count):
            pick = self._rng.randint(i, len(indices) - 1)
            indices[i], indices[pick] = indices[pick], indices[i]
            selected.append(pool[indices[i]])
        return selected

    def pick_random_trend_direction(self) -> TrendDirection:
        roll = self._rng.randrange(100)
        if roll < BULL_ROLL_BELOW:
            return TrendDirection.BULL
        if roll < BEAR_ROLL_BELOW:
            return TrendDirection.BEAR
        return TrendDirection.NEUTRAL

    def _sector_trends(self, selections: Sequence[StockDefinition]) -> Dict[Sector, TrendDirection]:
        trends: Dict[Sector, TrendDirection] = {}
        for definition in selections:
            if definition.sector != Sector.NONE and definition.sector not in trends:
                trends[definition.sector] = self.pick_random_trend_direction()
        return trends

    # ---- diagnostics ----

    def debug_info(self) -> list[StockDebugInfo]:
        infos: list[StockDebugInfo] = []
        for stock in self._active:
            event = stock.active_event
            if event is None:
                events = self._effects.active_events_for_stock(stock.stock_id)
                event = events[0] if events else None

            infos.append(
                StockDebugInfo(
                    stock_id=stock.stock_id,
                    ticker=stock.ticker_symbol,
                    tier=stock.tier,
                    current_price=stock.current_price,
                    trend_line_price=stock.trend_line_price,
                    trend_direction=stock.trend_direction,
                    trend_per_second=stock.trend_per_second,
                    noise_amplitude=stock.noise_amplitude,
                    noise_accumulator=stock.noise_accumulator,
                    reversion_speed=stock.tier_config.mean_reversion_speed,
                    has_active_event=event is not None,
                    active_event_type=_event_type_name(event) if event is not None else None,
                    event_time_remaining=(event.duration - event.elapsed_time) if event is not None else None,
                    sector=stock.sector,
                )
            )
        return infos


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _event_type_name(event) -> str:
    kind = event.event_type
    return kind.value if hasattr(kind, "value") else str(kind)
