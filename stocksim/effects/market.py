from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional, Sequence

from stocksim.bus import EventBus
from stocksim.effects.base import EventEffects
from stocksim.instance import StockInstance
from stocksim.schemas import MarketEventEnded, MarketEventFired, MarketEventType


log = logging.getLogger(__name__)


@dataclass
class MarketEvent:
    event_type: MarketEventType
    # None -> global event
    target_stock_id: Optional[int]
    price_effect_percent: float
    duration: float
    elapsed_time: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.elapsed_time < self.duration

    @property
    def is_global(self) -> bool:
        return self.target_stock_id is None

    @property
    def remaining(self) -> float:
        return self.duration - self.elapsed_time

    def current_force(self) -> float:
        """
        Triangle envelope: 0 -> 1 over the first half of the duration, 1 -> 0 over the second.
        """
        if self.elapsed_time <= 0.0 or self.elapsed_time >= self.duration:
            return 0.0
        half = self.duration * 0.5
        if self.elapsed_time <= half:
            return self.elapsed_time / half
        return 1.0 - (self.elapsed_time - half) / half


class MarketEventEffects(EventEffects):
    """
    In-process event store. `update_active_events` must run once per tick before
    prices are updated so that expired events are already gone.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        resolve_stock: Optional[Callable[[int], Optional[StockInstance]]] = None,
    ) -> None:
        self._bus = bus if bus is not None else EventBus()
        self._resolve_stock = resolve_stock
        self._active: List[MarketEvent] = []

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def active_events(self) -> tuple[MarketEvent, ...]:
        return tuple(self._active)

    def start_event(self, event: MarketEvent, publish: bool = True) -> None:
        """
        With publish=False the caller announces the event itself (one notice for a
        group of events started together).
        """
        self._active.append(event)

        stock = self._target(event)
        if stock is not None:
            stock.apply_event(event, stock.current_price * (1.0 + event.price_effect_percent))

        if not publish:
            return
        self._bus.publish(
            MarketEventFired(
                event_type=event.event_type.value,
                affected_stock_ids=None if event.is_global else (event.target_stock_id,),
                price_effect_percent=event.price_effect_percent,
            )
        )
        log.info(
            "event fired: %s on %s (%+.1f%% over %ss)",
            event.event_type.value,
            "ALL" if event.is_global else f"stock {event.target_stock_id}",
            event.price_effect_percent * 100.0,
            event.duration,
        )

    def update_active_events(self, dt: float) -> None:
        expired: List[MarketEvent] = []
        for event in self._active:
            event.elapsed_time += dt
            if not event.is_active:
                expired.append(event)

        for event in expired:
            self._active.remove(event)

            stock = self._target(event)
            if stock is not None and stock.active_event is event:
                stock.clear_event()

            self._bus.publish(
                MarketEventEnded(
                    event_type=event.event_type.value,
                    affected_stock_ids=None if event.is_global else (event.target_stock_id,),
                )
            )
            log.info("event ended: %s", event.event_type.value)

    def clear(self) -> None:
        self._active.clear()

    def active_events_for_stock(self, stock_id: int) -> Sequence[MarketEvent]:
        return [e for e in self._active if e.is_global or e.target_stock_id == stock_id]

    def apply_event_effect(self, stock: StockInstance, event: MarketEvent, dt: float) -> float:
        force = event.current_force()
        if force <= 0.0:
            return stock.current_price

        target = stock.current_price * (1.0 + event.price_effect_percent)
        # a long tick lands on the target, never past it
        t = min(max(force * dt, 0.0), 1.0)
        return stock.current_price + (target - stock.current_price) * t

    def _target(self, event: MarketEvent) -> Optional[StockInstance]:
        if event.is_global or self._resolve_stock is None:
            return None
        return self._resolve_stock(event.target_stock_id)
