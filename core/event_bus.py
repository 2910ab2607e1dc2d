"""EventBus — in-process delivery of committed market events to indexers.

Indexers that attach late can ask for a replay of the retained history
before live delivery starts; ``Event.seq`` lets them drop duplicates.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from uuid import uuid4

import structlog

logger = structlog.get_logger("core.event_bus")

# Subscribing to this topic receives every event regardless of its name.
ALL_TOPICS = "*"


@dataclass(frozen=True, slots=True)
class Event:
    """One committed market event (``ListingCreated``, ``ItemSold``, ...)."""

    seq: int
    topic: str
    payload: dict[str, Any]
    trace_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def matches(self, topic: str) -> bool:
        return topic == ALL_TOPICS or topic == self.topic


class EventBus:
    """Fan-out of market events, one bounded asyncio.Queue per subscriber.

    A subscriber that falls ``maxsize`` events behind loses the overflow
    (counted in ``stats["dropped"]``); publishing never blocks settlement.

    Usage::

        bus = EventBus()

        async for event in bus.subscribe("ItemSold", replay=True):
            index(event)

        await bus.publish("ItemSold", {"id": 0, "buyer": "0x..."})
    """

    def __init__(self, maxsize: int = 4096, history_size: int = 1024) -> None:
        self._maxsize = maxsize
        self._queues: dict[str, list[asyncio.Queue[Event]]] = {}
        self._history: deque[Event] = deque(maxlen=history_size)
        self._seq = itertools.count()
        self._lock = asyncio.Lock()
        self._published = 0
        self._dropped = 0

    async def publish(
        self,
        topic: str,
        payload: dict[str, Any],
        trace_id: str | None = None,
    ) -> Event:
        """Record *payload* under *topic* and hand it to every matching subscriber.

        ``trace_id`` ties the event to the runtime call that committed it;
        a fresh UUID4 is used when none is given.
        """
        event = Event(
            seq=next(self._seq),
            topic=topic,
            payload=payload,
            trace_id=trace_id or str(uuid4()),
        )
        self._history.append(event)
        self._published += 1

        for queue in self._queues.get(topic, []) + self._queues.get(ALL_TOPICS, []):
            self._offer(queue, event)
        return event

    def _offer(self, queue: asyncio.Queue[Event], event: Event) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                "event_bus.subscriber_lagging",
                topic=event.topic,
                seq=event.seq,
                trace_id=event.trace_id,
                backlog=queue.qsize(),
            )

    async def subscribe(self, topic: str, replay: bool = False) -> AsyncIterator[Event]:
        """Yield events for *topic* (or ``"*"``) until the consumer is cancelled.

        With ``replay=True`` the retained history for *topic* is yielded
        first, oldest first.
        """
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._maxsize)
        async with self._lock:
            backlog = self.history(topic) if replay else []
            self._queues.setdefault(topic, []).append(queue)

        try:
            for event in backlog:
                yield event
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                remaining = [q for q in self._queues.get(topic, []) if q is not queue]
                if remaining:
                    self._queues[topic] = remaining
                else:
                    self._queues.pop(topic, None)

    def history(self, topic: str | None = None) -> list[Event]:
        """Retained events, oldest first, optionally restricted to *topic*."""
        if topic is None:
            return list(self._history)
        return [e for e in self._history if e.matches(topic)]

    def subscriber_count(self, topic: str) -> int:
        return len(self._queues.get(topic, []))

    @property
    def stats(self) -> dict[str, int]:
        return {"published": self._published, "dropped": self._dropped}
