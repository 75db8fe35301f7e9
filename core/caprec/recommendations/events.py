"""Recommendation events and the UI notification surface.

Two outward signals:

- an in-process event bus (``recommendations:generated``,
  ``recommendations:feedback``) with explicit subscriptions;
- a push to an external UI surface on the ``recommendations:new``
  channel, fire-and-forget.

Neither may fail the pipeline: handler and sink errors are logged.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)

UI_CHANNEL = "recommendations:new"


class RecommendationEventType(StrEnum):
    GENERATED = "recommendations:generated"
    FEEDBACK = "recommendations:feedback"


@dataclass
class RecommendationEvent:
    """An event delivered to bus subscribers."""

    type: RecommendationEventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[RecommendationEvent], Awaitable[None] | None]


@dataclass
class _Subscription:
    id: str
    event_types: frozenset[RecommendationEventType]
    handler: EventHandler


class RecommendationEventBus:
    """Observer registry for recommendation events.

    Example:
        bus = RecommendationEventBus()
        sub_id = bus.subscribe(
            event_types=[RecommendationEventType.GENERATED],
            handler=on_generated,
        )
        ...
        bus.unsubscribe(sub_id)
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, _Subscription] = {}

    def subscribe(
        self,
        event_types: list[RecommendationEventType],
        handler: EventHandler,
    ) -> str:
        """Register *handler* for *event_types*; returns a subscription id."""
        sub_id = uuid.uuid4().hex
        self._subscriptions[sub_id] = _Subscription(
            id=sub_id,
            event_types=frozenset(RecommendationEventType(t) for t in event_types),
            handler=handler,
        )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscriptions.pop(subscription_id, None) is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: RecommendationEvent) -> None:
        """Deliver *event* to every matching subscriber, in subscription order."""
        for sub in list(self._subscriptions.values()):
            if event.type not in sub.event_types:
                continue
            try:
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler {sub.id} failed on {event.type.value}: {e}")


class NotificationSink(Protocol):
    """External UI surface. ``send`` may be sync or async."""

    def send(self, channel: str, payload: dict[str, Any]) -> Awaitable[None] | None: ...


class UINotifier:
    """Pushes payloads to a :class:`NotificationSink` without waiting on it.

    Async sends are scheduled as tasks; :meth:`drain` awaits whatever is
    still in flight (used on shutdown and in tests).
    """

    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink = sink
        self._pending: set[asyncio.Task[Any]] = set()

    def notify(self, channel: str, payload: dict[str, Any]) -> None:
        if self.sink is None:
            return
        try:
            result = self.sink.send(channel, payload)
        except Exception as e:
            logger.warning(f"UI notification on {channel} failed: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(lambda t: self._finished(channel, t))

    def _finished(self, channel: str, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"UI notification on {channel} failed: {error}")

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
