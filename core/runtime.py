"""Runtime — serial, all-or-nothing execution of market calls.

The settlement core assumes an environment where every call runs to
completion before the next one starts and where a failing call leaves
no trace.  ``Runtime`` provides exactly that for in-process use:

- calls are serialized behind one ``asyncio.Lock``;
- every registered participant is snapshotted on entry and restored if
  the call raises;
- events staged during the call reach the ``EventBus`` only on commit.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, runtime_checkable
from uuid import uuid4

import structlog

from core.event_bus import EventBus

logger = structlog.get_logger("core.runtime")


@runtime_checkable
class Stateful(Protocol):
    """Anything whose state must roll back with a failed call."""

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


@dataclass
class CallContext:
    """Identity and attached value of the call being executed."""

    sender: str
    value: int = 0
    label: str = "call"
    trace_id: str = field(default_factory=lambda: str(uuid4()))
    events: list[Any] = field(default_factory=list)

    def emit(self, event: Any) -> None:
        """Stage an event; it is published only if the call commits."""
        self.events.append(event)


class Runtime:
    """Serial execution environment with snapshot rollback.

    Parameters
    ----------
    event_bus:
        Destination for committed events.  Optional; without it events
        are only returned to the caller through ``CallContext.events``.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._event_bus = event_bus
        self._participants: list[Stateful] = []
        self._lock = asyncio.Lock()
        self._stats = {"committed": 0, "reverted": 0}

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    def register(self, participant: Stateful) -> None:
        """Include *participant* in every subsequent snapshot.  Idempotent."""
        if not isinstance(participant, Stateful):
            raise TypeError(f"{type(participant).__name__} has no snapshot()/restore()")
        if not any(p is participant for p in self._participants):
            self._participants.append(participant)

    @property
    def in_call(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def call(
        self,
        sender: str,
        value: int = 0,
        label: str = "call",
    ) -> AsyncIterator[CallContext]:
        """Run the body as one indivisible call.

        Usage::

            async with runtime.call(sender=buyer, value=price, label="buy_item") as ctx:
                ...
                ctx.emit(ItemSold(...))
        """
        if value < 0:
            raise ValueError("attached value cannot be negative")

        async with self._lock:
            ctx = CallContext(sender=sender, value=value, label=label)
            snapshots = [(p, p.snapshot()) for p in self._participants]
            try:
                yield ctx
            except BaseException as exc:
                for participant, state in reversed(snapshots):
                    participant.restore(state)
                self._stats["reverted"] += 1
                logger.warning(
                    "runtime.reverted",
                    label=label,
                    sender=sender,
                    trace_id=ctx.trace_id,
                    error=type(exc).__name__,
                    reason=str(exc),
                )
                raise

            self._stats["committed"] += 1
            logger.debug(
                "runtime.committed",
                label=label,
                sender=sender,
                trace_id=ctx.trace_id,
                events=len(ctx.events),
            )

        if self._event_bus is not None:
            for event in ctx.events:
                await self._event_bus.publish(event.topic, event.payload(), trace_id=ctx.trace_id)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)
