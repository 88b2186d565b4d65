from __future__ import annotations

import random

import pytest

from stocksim.bus import EventBus
from stocksim.catalog import TierCatalog
from stocksim.config import DEFAULT_EVENT_DEFINITIONS, DEFAULT_POOLS, DEFAULT_TIERS, EventSchedulerConfig
from stocksim.effects.market import MarketEventEffects
from stocksim.effects.scheduler import EventScheduler
from stocksim.instance import StockInstance
from stocksim.schemas import MarketEventFired, MarketEventType, Sector, Tier, TrendDirection


def _stock(stock_id: int, tier: Tier = Tier.MID_VALUE, sector: Sector = Sector.NONE) -> StockInstance:
    return StockInstance.initialize(
        stock_id=stock_id,
        ticker_symbol=f"S{stock_id}",
        tier=tier,
        tier_config=DEFAULT_TIERS[tier],
        starting_price=100.0,
        trend_direction=TrendDirection.NEUTRAL,
        trend_strength=0.0,
        sector=sector,
    )


def _scheduler(rng, stocks=(), catalog=None, bus=None, **cfg):
    by_id = {s.stock_id: s for s in stocks}
    effects = MarketEventEffects(bus=bus or EventBus(), resolve_stock=by_id.get)
    sched = EventScheduler(
        effects=effects,
        cfg=EventSchedulerConfig(**cfg),
        definitions=DEFAULT_EVENT_DEFINITIONS,
        catalog=catalog or TierCatalog(tiers=DEFAULT_TIERS, pools=DEFAULT_POOLS),
        rng=rng,
    )
    return sched, effects


def _fired(bus: EventBus) -> list[MarketEventFired]:
    seen: list[MarketEventFired] = []
    bus.subscribe(MarketEventFired, seen.append)
    return seen


@pytest.mark.parametrize("tier,drawn,expected", [
    (Tier.PENNY, 5, 8),       # 7.5 rounds to even
    (Tier.LOW_VALUE, 6, 7),   # 7.2
    (Tier.MID_VALUE, 7, 7),
    (Tier.BLUE_CHIP, 6, 3),
])
def test_event_count_scales_with_tier_modifier(scripted_rng, tier, drawn, expected):
    sched, _ = _scheduler(scripted_rng(ints=[drawn]))

    sched.initialize_round([_stock(0, tier)])

    assert sched.scheduled_count == expected


def test_zero_modifier_still_schedules_one_event(scripted_rng, tier_factory):
    cat = TierCatalog(
        tiers={**DEFAULT_TIERS, Tier.PENNY: tier_factory(event_frequency_modifier=0.0)},
        pools=DEFAULT_POOLS,
    )
    sched, _ = _scheduler(scripted_rng(ints=[7]), catalog=cat)

    sched.initialize_round([_stock(0, Tier.PENNY)])

    assert sched.scheduled_count == 1


@pytest.mark.parametrize("seed", range(5))
def test_fire_times_fall_one_per_segment(seed):
    sched, _ = _scheduler(random.Random(seed), min_events=4, max_events=4, round_seconds=20.0)

    sched.initialize_round([_stock(0)])

    # window [2, 18] in four 4s segments
    times = sched.fire_times
    assert len(times) == 4
    for i, t in enumerate(times):
        assert 2.0 + 4.0 * i <= t <= 2.0 + 4.0 * (i + 1)


def test_short_round_ignores_buffers():
    sched, _ = _scheduler(random.Random(1), min_events=3, max_events=3, round_seconds=3.0)

    sched.initialize_round([_stock(0)])

    assert all(0.0 <= t <= 3.0 for t in sched.fire_times)
    assert min(sched.fire_times) < 2.0


def test_each_tier_in_round_gets_its_own_slots():
    sched, _ = _scheduler(random.Random(2), min_events=4, max_events=4)

    sched.initialize_round([_stock(0, Tier.PENNY), _stock(1, Tier.BLUE_CHIP)])

    # penny 4 * 1.5, blue chip 4 * 0.5
    assert sched.scheduled_count == 8
    assert sched.fire_times == sorted(sched.fire_times)


def test_disabled_scheduler_only_ages_events():
    stocks = [_stock(0)]
    sched, effects = _scheduler(random.Random(3), stocks=stocks, enabled=False)
    sched.initialize_round(stocks)
    assert sched.scheduled_count == 0

    sched.fire_event(MarketEventType.EARNINGS_BEAT, stocks)
    for _ in range(20):
        sched.update(0.5, stocks)

    assert sched.fired_count == 0
    assert effects.active_events == ()


def test_select_event_type_respects_tier_availability():
    sched, _ = _scheduler(random.Random(4))

    penny = {sched.select_event_type(Tier.PENNY) for _ in range(500)}
    blue = {sched.select_event_type(Tier.BLUE_CHIP) for _ in range(500)}

    assert MarketEventType.PUMP_AND_DUMP in penny
    assert MarketEventType.SECTOR_ROTATION not in penny
    assert MarketEventType.PUMP_AND_DUMP not in blue
    assert MarketEventType.FLASH_CRASH not in blue
    assert MarketEventType.MERGER_RUMOR in blue


@pytest.mark.parametrize("roll,expected", [
    # blue chip weights in order: beat .5, miss .5, rotation .4, merger .3,
    # crash .15, bull run .15, squeeze .25
    (0.2, MarketEventType.EARNINGS_BEAT),
    (0.75, MarketEventType.EARNINGS_MISS),
    (1.2, MarketEventType.SECTOR_ROTATION),
    (1.8, MarketEventType.MARKET_CRASH),
    (2.1, MarketEventType.SHORT_SQUEEZE),
])
def test_select_event_type_is_rarity_weighted(scripted_rng, roll, expected):
    sched, _ = _scheduler(scripted_rng(uniforms=[roll]))
    assert sched.select_event_type(Tier.BLUE_CHIP) == expected


def test_global_event_targets_every_stock():
    stocks = [_stock(0), _stock(1)]
    sched, effects = _scheduler(random.Random(5), stocks=stocks)

    [event] = sched.fire_event(MarketEventType.MARKET_CRASH, stocks)

    assert event.is_global
    assert -0.40 <= event.price_effect_percent <= -0.20
    assert effects.active_events_for_stock(1) == [event]


def test_targeted_event_picks_a_round_stock(scripted_rng):
    bus = EventBus()
    fired = _fired(bus)
    stocks = [_stock(0, Tier.PENNY), _stock(1, Tier.PENNY), _stock(2, Tier.PENNY)]
    sched, _ = _scheduler(scripted_rng(rolls=[1], uniforms=[0.3]), stocks=stocks, bus=bus)

    [event] = sched.fire_event(MarketEventType.EARNINGS_BEAT, stocks)

    assert event.target_stock_id == 1
    assert stocks[1].active_event is event
    assert fired == [MarketEventFired("earnings_beat", (1,), 0.3)]


def test_targeted_event_without_stocks_is_skipped():
    sched, effects = _scheduler(random.Random(6))
    assert sched.fire_event(MarketEventType.EARNINGS_MISS, []) == []
    assert effects.active_events == ()


def test_sector_rotation_lifts_one_sector_and_sinks_another(scripted_rng):
    bus = EventBus()
    fired = _fired(bus)
    stocks = [
        _stock(0, sector=Sector.TECH),
        _stock(1, sector=Sector.TECH),
        _stock(2, sector=Sector.ENERGY),
        _stock(3, sector=Sector.HEALTH),
    ]
    # sectors in order: tech, energy, health; pick tech, then energy
    sched, effects = _scheduler(scripted_rng(uniforms=[0.15], rolls=[0, 0]), stocks=stocks, bus=bus)

    events = sched.fire_event(MarketEventType.SECTOR_ROTATION, stocks)

    assert [(e.target_stock_id, e.price_effect_percent) for e in events] == [(0, 0.15), (1, 0.15), (2, -0.15)]
    assert effects.active_events_for_stock(3) == []
    assert fired == [MarketEventFired("sector_rotation", (0, 1, 2), 0.15)]


def test_sector_rotation_without_sectors_splits_stocks():
    bus = EventBus()
    fired = _fired(bus)
    stocks = [_stock(i) for i in range(4)]
    sched, _ = _scheduler(random.Random(7), stocks=stocks, bus=bus)

    events = sched.fire_event(MarketEventType.SECTOR_ROTATION, stocks)

    effects = sorted(e.price_effect_percent for e in events)
    assert len(events) == 4
    assert effects[0] == effects[1] == -effects[2] == -effects[3]
    assert 0.10 <= effects[3] <= 0.18
    assert sorted(e.target_stock_id for e in events) == [0, 1, 2, 3]
    assert len(fired) == 1


def test_sector_rotation_needs_two_stocks():
    stocks = [_stock(0)]
    sched, _ = _scheduler(random.Random(8), stocks=stocks)
    assert sched.fire_event(MarketEventType.SECTOR_ROTATION, stocks) == []


def test_update_fires_each_slot_once_when_due():
    bus = EventBus()
    fired = _fired(bus)
    stocks = [_stock(0), _stock(1)]
    sched, _ = _scheduler(random.Random(9), stocks=stocks, bus=bus, min_events=1, max_events=1, round_seconds=10.0)
    sched.initialize_round(stocks)
    [fire_at] = sched.fire_times

    for _ in range(24):
        sched.update(0.5, stocks)
        assert sched.fired_count == (1 if sched.elapsed >= fire_at else 0)

    assert len(fired) == 1


def test_new_round_resets_schedule():
    stocks = [_stock(0), _stock(1)]
    sched, _ = _scheduler(random.Random(10), stocks=stocks, round_seconds=10.0)
    sched.initialize_round(stocks)
    for _ in range(40):
        sched.update(0.25, stocks)
    assert sched.fired_count == sched.scheduled_count

    sched.initialize_round(stocks)

    assert sched.fired_count == 0
    assert sched.elapsed == 0.0
