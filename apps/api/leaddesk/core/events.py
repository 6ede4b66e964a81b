from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous bus. Subscriptions may use glob patterns such as ``leads.lead.*``."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler in self._subscribers[event_name]:
            return
        self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for pattern, handlers in list(self._subscribers.items()):
            if pattern != event_name and not fnmatchcase(event_name, pattern):
                continue
            for handler in list(handlers):
                handler(event)

    def clear(self) -> None:
        self._subscribers.clear()


event_bus = InProcessEventBus()
