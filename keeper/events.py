"""
In-process event bus. Producers publish (topic, market_id, data); listeners
subscribe per topic or to "*" for everything. Delivery is synchronous and
fire-and-forget: a failing listener is logged and never reaches the publisher.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

CRANK_SUCCESS = "crank.success"
CRANK_FAILURE = "crank.failure"
PRICE_UPDATED = "price.updated"
MARKET_DISCOVERED = "market.discovered"
MARKET_RETIRED = "market.retired"

WILDCARD = "*"


@dataclass(frozen=True)
class Event:
    event: str
    market_id: str
    data: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[Event], None]


class EventBus:
    """Thread-safe topic -> listeners registry."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for *topic*. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.setdefault(topic, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(topic)
                if listeners and listener in listeners:
                    listeners.remove(listener)
                    if not listeners:
                        del self._listeners[topic]

        return unsubscribe

    def publish(self, topic: str, market_id: str, data: dict | None = None) -> Event:
        event = Event(event=topic, market_id=market_id, data=dict(data or {}))
        with self._lock:
            targets = list(self._listeners.get(topic, ()))
            if topic != WILDCARD:
                targets.extend(self._listeners.get(WILDCARD, ()))

        for listener in targets:
            try:
                listener(event)
            except Exception as e:
                logger.warning("Event listener for %s raised: %s", topic, e)
        return event

    def subscription_count(self, topic: str) -> int:
        with self._lock:
            return len(self._listeners.get(topic, ()))
