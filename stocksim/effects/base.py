from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from stocksim.effects.market import MarketEvent
    from stocksim.instance import StockInstance


class EventEffects(ABC):
    @abstractmethod
    def active_events_for_stock(self, stock_id: int) -> Sequence["MarketEvent"]:
        """
        Events currently affecting the stock, in the order they must be applied.
        """
        raise NotImplementedError

    @abstractmethod
    def apply_event_effect(self, stock: "StockInstance", event: "MarketEvent", dt: float) -> float:
        """
        Returns the stock's price after `event` acts on it for `dt` seconds.
        Must return the current price unchanged when dt == 0.
        """
        raise NotImplementedError


class NullEventEffects(EventEffects):
    def active_events_for_stock(self, stock_id: int) -> Sequence["MarketEvent"]:
        return ()

    def apply_event_effect(self, stock: "StockInstance", event: "MarketEvent", dt: float) -> float:
        return stock.current_price
