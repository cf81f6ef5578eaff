"""
broadcast.py - Event fan-out between markets

The market itself notifies exactly one sink. Broadcaster is that sink when
several listeners (typically other markets) must hear about every event:

    hub = Broadcaster()
    bvc = Market.with_quantities(..., sink=hub)
    hub.subscribe(other_market.on_event)

Subscribers are called in subscription order. A subscriber must never call
back into the market that produced the event.
"""

from __future__ import annotations
from typing import Callable, List

from .core import MarketEvent


Subscriber = Callable[[MarketEvent], None]


class Broadcaster:
    """Forwards each event to every subscriber."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            raise ValueError("Subscriber already registered")
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def __call__(self, event: MarketEvent) -> None:
        for subscriber in list(self._subscribers):
            subscriber(event)
