"""Aggregate persistence.

``IRepository`` is the protocol.  ``InMemoryRepository`` ships for tests
and local runs.

Optimistic concurrency
----------------------
Every aggregate carries a ``version``.  ``save()`` accepts the aggregate
only if its ``version`` equals the stored one (0 for a new aggregate),
then bumps it on both the stored copy and the caller's instance.  Two
callers that load the same version and both save: the second one gets
``ConcurrencyConflictError``.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Generic, Protocol, TypeVar, runtime_checkable

from marketplace.core.errors import AggregateNotFoundError, ConcurrencyConflictError
from marketplace.domain.entity import Aggregate

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Aggregate)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IRepository(Protocol[T]):
    """Load-by-id and save for one aggregate type."""

    async def load(self, aggregate_id: uuid.UUID) -> T:
        """Return the aggregate or raise ``AggregateNotFoundError``."""
        ...

    async def get(self, aggregate_id: uuid.UUID) -> T | None:
        """Return the aggregate, or ``None`` when absent."""
        ...

    async def save(self, aggregate: T) -> None:
        """Persist *aggregate*; raise ``ConcurrencyConflictError`` on a stale version."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

def _detached(aggregate: T) -> T:
    """Deep copy sharing the injected clock instead of duplicating it."""
    return copy.deepcopy(aggregate, memo={id(aggregate.clock): aggregate.clock})


class InMemoryRepository(Generic[T]):
    """Dict-backed repository holding detached copies.

    Callers never share an instance with the store, so a stale snapshot
    really is stale.  Pending events are not persisted: the stored copy's
    buffer is emptied, and loaded aggregates start with an empty buffer.
    """

    def __init__(self, aggregate_type: str) -> None:
        self._aggregate_type = aggregate_type
        self._items: dict[uuid.UUID, T] = {}

    @property
    def aggregate_type(self) -> str:
        return self._aggregate_type

    async def load(self, aggregate_id: uuid.UUID) -> T:
        stored = self._items.get(aggregate_id)
        if stored is None:
            raise AggregateNotFoundError(self._aggregate_type, aggregate_id)
        return _detached(stored)

    async def get(self, aggregate_id: uuid.UUID) -> T | None:
        stored = self._items.get(aggregate_id)
        return _detached(stored) if stored is not None else None

    async def save(self, aggregate: T) -> None:
        stored = self._items.get(aggregate.id)
        stored_version = stored.version if stored is not None else 0
        if aggregate.version != stored_version:
            logger.warning(
                "Concurrency conflict on %s %s: snapshot=%d stored=%d",
                self._aggregate_type,
                aggregate.id,
                aggregate.version,
                stored_version,
            )
            raise ConcurrencyConflictError(
                self._aggregate_type, aggregate.id, aggregate.version, stored_version
            )

        snapshot = _detached(aggregate)
        snapshot.version = stored_version + 1
        snapshot.events.drain()
        self._items[aggregate.id] = snapshot
        aggregate.version = snapshot.version
        logger.debug(
            "Saved %s %s at version %d",
            self._aggregate_type,
            aggregate.id,
            snapshot.version,
        )

    # -- helpers -----------------------------------------------------------

    async def exists(self, aggregate_id: uuid.UUID) -> bool:
        return aggregate_id in self._items

    async def list_all(self, *, include_deleted: bool = False) -> list[T]:
        return [
            _detached(item)
            for item in self._items.values()
            if include_deleted or not item.audit.is_deleted
        ]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
