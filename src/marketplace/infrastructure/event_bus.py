"""In-process event bus for drained domain events.

Routing is by exact event class: a handler subscribed to ``OrderPlaced``
sees ``OrderPlaced`` and nothing else.

Publishing runs in a fixed order:

1. ownership check against ``WRITE_OWNERSHIP`` (when enforced); a
   misattributed event raises ``WriteOwnershipError`` and goes nowhere;
2. append to the event store, if one is attached; a store failure
   propagates so the caller knows the outbox missed the event;
3. history;
4. handlers, each isolated: an exception is logged, counted per event
   type and kept as a ``DeadLetter``, and the next handler still runs.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from marketplace.core.errors import WriteOwnershipError
from marketplace.domain.events import WRITE_OWNERSHIP, DomainEvent
from marketplace.infrastructure.event_store import IEventStore

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True)
class DeadLetter:
    """An event one of whose handlers raised."""

    event: DomainEvent
    handler: str
    error: str


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """What ``save_and_publish`` and the handler layer rely on."""

    async def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventBus:
    """Deterministic bus: handlers are awaited one after another.

    Parameters
    ----------
    enforce_ownership
        Reject events whose ``source`` is not the owner registered in
        ``WRITE_OWNERSHIP``.  Event types missing from the table pass.
    event_store
        Outbox that receives every accepted event before dispatch.
    """

    def __init__(
        self,
        *,
        enforce_ownership: bool = True,
        event_store: IEventStore | None = None,
    ) -> None:
        self._enforce_ownership = enforce_ownership
        self._event_store = event_store
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = defaultdict(list)
        self._history: list[DomainEvent] = []
        self._dead_letters: list[DeadLetter] = []
        self._errors: Counter[str] = Counter()
        self._delivered = 0
        self._running = False

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # -- Subscriptions -----------------------------------------------------

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> bool:
        """Remove *handler*; return ``False`` if it was not subscribed."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    # -- Publishing --------------------------------------------------------

    async def publish(self, event: DomainEvent) -> None:
        """Store, record and dispatch *event*.

        Raises
        ------
        WriteOwnershipError
            Ownership is enforced and ``event.source`` is not the owner.
        """
        self._check_ownership(event)
        if self._event_store is not None:
            await self._event_store.append(event)
        self._history.append(event)
        await self._dispatch(event)

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)

    def _check_ownership(self, event: DomainEvent) -> None:
        if not self._enforce_ownership:
            return
        owner = WRITE_OWNERSHIP.get(type(event))
        if owner is not None and event.source != owner:
            raise WriteOwnershipError(
                f"{type(event).__name__} is owned by {owner!r}, "
                f"refusing publish from source={event.source!r}"
            )

    async def _dispatch(self, event: DomainEvent) -> None:
        name = type(event).__name__
        # Copy: a handler may subscribe further handlers while running.
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception as exc:
                handler_name = getattr(handler, "__qualname__", repr(handler))
                self._errors[name] += 1
                self._dead_letters.append(DeadLetter(event, handler_name, str(exc)))
                logger.exception(
                    "Handler %s failed on %s %s", handler_name, name, event.event_id
                )
            else:
                self._delivered += 1

    # -- Inspection --------------------------------------------------------

    def get_history(self, event_type: type[DomainEvent] | None = None) -> list[DomainEvent]:
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if type(e) is event_type]

    def clear_history(self) -> None:
        self._history.clear()

    def get_error_counts(self) -> dict[str, int]:
        """``{event type name: failed handler calls}``."""
        return dict(self._errors)

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    def clear_dead_letters(self) -> list[DeadLetter]:
        """Hand over and forget the current dead letters."""
        drained, self._dead_letters = self._dead_letters, []
        return drained

    @property
    def messages_processed(self) -> int:
        """Successful handler invocations."""
        return self._delivered

    @property
    def event_store(self) -> IEventStore | None:
        return self._event_store
