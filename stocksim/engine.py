from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import datetime, timezone
import logging
import random
from typing import Any, Iterable, Optional
import traceback

from stocksim.bus import EventBus
from stocksim.catalog import TierCatalog
from stocksim.config import Config
from stocksim.effects.market import MarketEvent, MarketEventEffects
from stocksim.effects.scheduler import EventScheduler
from stocksim.feed import PriceFeed
from stocksim.generator import PriceGenerator
from stocksim.schemas import PriceUpdated, Tier


log = logging.getLogger(__name__)


def build_engine(cfg: Config, feed: Optional[PriceFeed] = None) -> "Engine":
    bus = EventBus()
    catalog = TierCatalog.from_config(cfg.market)
    # one RNG for rounds, ticks and event rolls keeps a seeded run reproducible
    rng = random.Random(cfg.simulation.seed)
    generator = PriceGenerator(
        catalog=catalog,
        rng=rng,
        bus=bus,
        correlated_sector_tiers=cfg.simulation.correlated_sector_tiers,
    )
    effects = MarketEventEffects(bus=bus, resolve_stock=generator.find_stock)
    generator.set_event_effects(effects)
    scheduler = EventScheduler(
        effects=effects,
        cfg=cfg.events.scheduler,
        definitions=cfg.events.definitions,
        catalog=catalog,
        rng=rng,
    )
    return Engine(
        cfg=cfg,
        generator=generator,
        effects=effects,
        scheduler=scheduler,
        feed=feed or PriceFeed(),
    )


class Engine:
    """
    Host loop around the price generator: one round at a time, one tick per interval.
    """

    def __init__(
        self,
        cfg: Config,
        generator: PriceGenerator,
        effects: MarketEventEffects,
        scheduler: EventScheduler,
        feed: PriceFeed,
    ) -> None:
        self.cfg = cfg
        self.generator = generator
        self.effects = effects
        self.scheduler = scheduler
        self.feed = feed

        self._task: Optional[asyncio.Task[None]] = None
        self._stop = asyncio.Event()
        self._tick_count = 0
        self._last_tick_ts: Optional[str] = None
        self._last_err: Optional[str] = None

    def start(self) -> None:
        if self._task is not None:
            return
        if not self.generator.active_stocks:
            self.new_round()
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
        self._task = None

    def new_round(self, tiers: Optional[Iterable[Tier]] = None) -> None:
        if tiers is None and self.cfg.simulation.round_tiers:
            tiers = self.cfg.simulation.round_tiers
        # events target stock ids, which are reused by the next round
        self.effects.clear()
        stocks = self.generator.initialize_round(tiers)
        self.scheduler.initialize_round(stocks)
        self._tick_count = 0

    def start_event(self, event: MarketEvent) -> None:
        if not event.is_global and self.generator.find_stock(int(event.target_stock_id)) is None:
            raise ValueError(f"Unknown stock id: {event.target_stock_id}")
        self.effects.start_event(event)

    def tick(self, dt: float) -> list[PriceUpdated]:
        # due events fire and running ones age before prices move
        self.scheduler.update(dt, self.generator.active_stocks)
        updates = self.generator.update_all(dt)
        self._tick_count += 1
        self._last_tick_ts = datetime.now(timezone.utc).isoformat()
        return updates

    def health(self) -> dict[str, Any]:
        return {
            "ts": datetime.now(timezone.utc).isoformat(),
            "engine_task_running": self._task is not None and not self._task.done(),
            "round": self.generator.round_index,
            "tick_count": self._tick_count,
            "events_scheduled": self.scheduler.scheduled_count,
            "events_fired": self.scheduler.fired_count,
            "last_tick_ts": self._last_tick_ts,
            "last_error": self._last_err,
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "ts": datetime.now(timezone.utc).isoformat(),
            "round": self.generator.round_index,
            "tick_count": self._tick_count,
            "stocks": [
                {
                    "stock_id": s.stock_id,
                    "ticker": s.ticker_symbol,
                    "tier": s.tier.value,
                    "sector": s.sector.value,
                    "price": float(s.current_price),
                    "trend_line": float(s.trend_line_price),
                    "trend": s.trend_direction.value,
                }
                for s in self.generator.active_stocks
            ],
            "events": [
                {
                    "type": e.event_type.value,
                    "target_stock_id": e.target_stock_id,
                    "price_effect_percent": e.price_effect_percent,
                    "remaining": e.remaining,
                }
                for e in self.effects.active_events
            ],
        }

    def debug(self) -> list[dict[str, Any]]:
        return [asdict(info) for info in self.generator.debug_info()]

    async def _run_loop(self) -> None:
        interval = float(self.cfg.simulation.tick_seconds)
        loop = asyncio.get_running_loop()
        last = loop.time()

        while not self._stop.is_set():
            start = loop.time()
            dt = max(0.0, start - last)
            last = start

            try:
                updates = self.tick(dt)
                self._last_err = None
                await self.feed.publish_tick(
                    self.generator.round_index, self._last_tick_ts or "", updates
                )
            except Exception as e:
                err = f"{type(e).__name__}: {e}"
                self._last_err = err
                log.exception("tick failed")
                tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))[-2000:]
                await self.feed.publish_error(datetime.now(timezone.utc).isoformat(), err, tb)

            elapsed = loop.time() - start
            sleep_for = max(0.0, interval - elapsed)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=sleep_for)
            except asyncio.TimeoutError:
                pass
