from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Type, TypeVar

T = TypeVar("T")


class EventBus:
    """
    Typed, synchronous publish/subscribe. Handlers run inline inside `publish`.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[type, List[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        handlers = self._subscribers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Any) -> None:
        handlers = self._subscribers.get(type(event))
        if not handlers:
            return
        # snapshot: handlers may (un)subscribe while being dispatched
        for handler in reversed(list(handlers)):
            handler(event)

    def clear(self) -> None:
        self._subscribers.clear()
