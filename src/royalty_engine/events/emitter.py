"""Event emitter for publishing payout events.

Delivery semantics:
- Every matching handler is invoked once per emit
- Handler failures are isolated: logged, collected and returned, never
  raised to the publisher
- A batch holds events until the surrounding block succeeds and drops
  them if it raises, so events never describe a rolled-back write

Subscribers that need at-least-once delivery re-emit from the workflow
audit log.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar, Union

from royalty_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], None]
AsyncEventHandler = Callable[[DomainEvent], Awaitable[None]]
Handler = Union[EventHandler, AsyncEventHandler]


@dataclass(frozen=True)
class Subscription:
    """A handler and the events it wants. Empty filters match everything."""

    handler: Handler
    event_types: frozenset[str] = frozenset()
    categories: frozenset[EventCategory] = frozenset()
    is_async: bool = True

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        return not self.categories or event.category in self.categories


def _names(event_type: type[DomainEvent] | Iterable[type[DomainEvent]]) -> frozenset[str]:
    if isinstance(event_type, type):
        return frozenset({event_type.__name__})
    return frozenset(t.__name__ for t in event_type)


class AsyncEventEmitter:
    """Publishes payout and report events to subscribed handlers.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify(event: PayoutStatusChanged) -> None:
            await send_notification(event)

        emitter.on(PayoutStatusChanged, notify)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._held: list[DomainEvent] | None = None

    def subscribe(self, subscription: Subscription) -> None:
        self._subscriptions.append(subscription)

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for specific event type(s)."""
        self.subscribe(Subscription(handler, event_types=_names(event_type)))

    def on_sync(
        self,
        event_type: type[T] | list[type[T]],
        handler: EventHandler,
    ) -> None:
        """Register a plain function handler; it runs inline during emit."""
        self.subscribe(
            Subscription(handler, event_types=_names(event_type), is_async=False)
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: AsyncEventHandler,
    ) -> None:
        cats = frozenset(category) if isinstance(category, list) else frozenset({category})
        self.subscribe(Subscription(handler, categories=cats))

    def on_all(self, handler: AsyncEventHandler) -> None:
        self.subscribe(Subscription(handler))

    def off(self, handler: Handler) -> None:
        """Remove every subscription of ``handler``."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver ``event`` to matching handlers, or hold it inside a batch.

        Returns the exceptions raised by handlers.
        """
        if self._held is not None:
            self._held.append(event)
            return []
        return await self._deliver(event)

    def batch(self) -> AsyncEventBatch:
        """Hold events until the ``async with`` block exits cleanly."""
        return AsyncEventBatch(self)

    async def _deliver(self, event: DomainEvent) -> list[Exception]:
        matched = [s for s in self._subscriptions if s.matches(event)]
        errors: list[Exception] = []

        for sub in matched:
            if sub.is_async:
                continue
            try:
                sub.handler(event)
            except Exception as e:
                logger.exception("Handler %s failed for %s", sub.handler, event.event_type)
                errors.append(e)

        calls = [self._guarded(sub.handler, event) for sub in matched if sub.is_async]
        if calls:
            results = await asyncio.gather(*calls, return_exceptions=True)
            errors.extend(r for r in results if isinstance(r, Exception))
        return errors

    @staticmethod
    async def _guarded(handler: Handler, event: DomainEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Async handler %s failed for %s", handler, event.event_type)
            raise

    def _hold(self) -> None:
        self._held = []

    def _release(self) -> list[DomainEvent]:
        held, self._held = self._held or [], None
        return held


class AsyncEventBatch:
    """Async context manager that publishes held events on success."""

    def __init__(self, emitter: AsyncEventEmitter) -> None:
        self._emitter = emitter
        self.errors: list[Exception] = []

    async def __aenter__(self) -> AsyncEventBatch:
        self._emitter._hold()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        held = self._emitter._release()
        if exc_type is not None:
            logger.debug("Discarding %d held event(s)", len(held))
            return
        for event in held:
            self.errors.extend(await self._emitter._deliver(event))

    async def add(self, event: DomainEvent) -> None:
        await self._emitter.emit(event)
