from __future__ import annotations

from dataclasses import dataclass
import logging
import random
from typing import Dict, List, Mapping, Optional, Sequence

from stocksim.catalog import TierCatalog
from stocksim.config import EventSchedulerConfig, MarketEventDefinition
from stocksim.effects.market import MarketEvent, MarketEventEffects
from stocksim.instance import StockInstance
from stocksim.schemas import MarketEventFired, MarketEventType, Sector, Tier


log = logging.getLogger(__name__)

GLOBAL_EVENT_TYPES = frozenset({MarketEventType.MARKET_CRASH, MarketEventType.BULL_RUN})

# sector rotation rolls its percent from here up to the definition's max effect
MIN_ROTATION_EFFECT = 0.10


@dataclass
class _Slot:
    fire_at: float
    tier: Tier
    fired: bool = False


class EventScheduler:
    """
    Decides when and which market events fire during a round; the price effect
    itself belongs to MarketEventEffects.

    Each tier in the round gets its own event count, scaled by the tier's
    event_frequency_modifier, spread over the round window with one fire time per
    equal segment. The event type is drawn when a slot fires. `update` must run
    before prices are updated on the same tick.
    """

    def __init__(
        self,
        effects: MarketEventEffects,
        cfg: EventSchedulerConfig,
        definitions: Mapping[MarketEventType, MarketEventDefinition],
        catalog: TierCatalog,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._effects = effects
        self._cfg = cfg
        self._definitions = dict(definitions)
        self._catalog = catalog
        self._rng = rng if rng is not None else random.Random()
        self._slots: List[_Slot] = []
        self._elapsed = 0.0

    @property
    def scheduled_count(self) -> int:
        return len(self._slots)

    @property
    def fired_count(self) -> int:
        return sum(1 for s in self._slots if s.fired)

    @property
    def fire_times(self) -> list[float]:
        return [s.fire_at for s in self._slots]

    @property
    def elapsed(self) -> float:
        return self._elapsed

    def initialize_round(self, stocks: Sequence[StockInstance]) -> None:
        self._slots = []
        self._elapsed = 0.0
        if not self._cfg.enabled:
            return

        present = {s.tier for s in stocks}
        for tier in Tier:
            if tier not in present:
                continue
            modifier = self._catalog.tier_config(tier).event_frequency_modifier
            lo, hi = self._cfg.min_events, self._cfg.max_events
            count = max(1, round(self._rng.randint(lo, max(lo, hi)) * modifier))
            self._slots.extend(_Slot(t, tier) for t in self._fire_times(count))
            log.debug("scheduled %d events for %s (freq modifier %.1f)", count, tier.value, modifier)

        self._slots.sort(key=lambda s: s.fire_at)
        log.info("round events scheduled: %d", len(self._slots))

    def update(self, dt: float, stocks: Sequence[StockInstance]) -> None:
        self._elapsed += dt
        for slot in self._slots:
            if slot.fired or self._elapsed < slot.fire_at:
                continue
            slot.fired = True
            event_type = self.select_event_type(slot.tier)
            if event_type is not None:
                self.fire_event(event_type, [s for s in stocks if s.tier == slot.tier])

        self._effects.update_active_events(dt)

    def select_event_type(self, tier: Tier) -> Optional[MarketEventType]:
        """
        Rarity-weighted pick among the event types available to the tier.
        """
        available = [(t, d) for t, d in self._definitions.items() if tier in d.tiers]
        total = sum(d.rarity for _, d in available)
        if not available or total <= 0.0:
            return None

        roll = self._rng.uniform(0.0, total)
        cumulative = 0.0
        for event_type, d in available:
            cumulative += d.rarity
            if roll <= cumulative:
                return event_type
        return available[-1][0]

    def fire_event(self, event_type: MarketEventType, stocks: Sequence[StockInstance]) -> List[MarketEvent]:
        definition = self._definitions[event_type]
        if event_type == MarketEventType.SECTOR_ROTATION:
            return self._fire_sector_rotation(definition, stocks)

        target: Optional[int] = None
        if event_type not in GLOBAL_EVENT_TYPES:
            if not stocks:
                return []
            target = stocks[self._rng.randrange(len(stocks))].stock_id

        effect = self._rng.uniform(definition.min_price_effect, definition.max_price_effect)
        event = MarketEvent(event_type, target, effect, definition.duration)
        self._effects.start_event(event)
        return [event]

    def _fire_sector_rotation(
        self, definition: MarketEventDefinition, stocks: Sequence[StockInstance]
    ) -> List[MarketEvent]:
        if len(stocks) < 2:
            return []

        percent = self._rng.uniform(MIN_ROTATION_EFFECT, definition.max_price_effect)

        groups: Dict[Sector, List[StockInstance]] = {}
        for s in stocks:
            if s.sector != Sector.NONE:
                groups.setdefault(s.sector, []).append(s)

        if len(groups) >= 2:
            sectors = list(groups)
            i = self._rng.randrange(len(sectors))
            j = self._rng.randrange(len(sectors) - 1)
            if j >= i:
                j += 1
            winners, losers = groups[sectors[i]], groups[sectors[j]]
        else:
            shuffled = list(stocks)
            self._rng.shuffle(shuffled)
            half = len(shuffled) // 2
            winners, losers = shuffled[:half], shuffled[half:]

        events = [MarketEvent(MarketEventType.SECTOR_ROTATION, s.stock_id, percent, definition.duration) for s in winners]
        events += [MarketEvent(MarketEventType.SECTOR_ROTATION, s.stock_id, -percent, definition.duration) for s in losers]
        for event in events:
            self._effects.start_event(event, publish=False)

        self._effects.bus.publish(
            MarketEventFired(
                event_type=MarketEventType.SECTOR_ROTATION.value,
                affected_stock_ids=tuple(e.target_stock_id for e in events),
                price_effect_percent=percent,
            )
        )
        log.info(
            "event fired: sector_rotation, %d winners / %d losers (%+.1f%% over %ss)",
            len(winners),
            len(losers),
            percent * 100.0,
            definition.duration,
        )
        return events

    def _fire_times(self, count: int) -> list[float]:
        start = self._cfg.early_buffer_seconds
        end = self._cfg.round_seconds - self._cfg.late_buffer_seconds
        if end <= start:
            # round too short for the buffers
            start, end = 0.0, self._cfg.round_seconds

        segment = (end - start) / count
        return [self._rng.uniform(start + i * segment, start + (i + 1) * segment) for i in range(count)]
