"""Append-only event store: the outbox domain events are drained into.

Design invariants
-----------------
1.  ``append()`` is **idempotent** on ``event.event_id``; appending the
    same event twice is a silent no-op.
2.  ``read()`` returns events in **append order**.  An event's sequence
    number is its zero-based append position; in the JSONL backend every
    stored record counts, including ones whose type this process cannot
    decode, so both backends number the same log identically.
3.  ``replay()`` yields events lazily.
4.  The store is **append-only**.  ``clear()`` exists only for testing.

This module provides:

*  ``IEventStore``  the protocol.
*  ``InMemoryEventStore``  list-backed, for tests and local runs.
*  ``JsonFileEventStore``  JSONL file, durable across restarts.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from marketplace.core.file_io import append_json_line, iter_json_lines
from marketplace.domain.events import ALL_DOMAIN_EVENTS, DomainEvent

logger = logging.getLogger(__name__)

_TYPE_KEY = "__event_type__"


# ---------------------------------------------------------------------------
# Serialization (pydantic handles Decimal, datetime and nested snapshots)
# ---------------------------------------------------------------------------

_ADAPTERS: dict[type[DomainEvent], TypeAdapter[Any]] = {}


def _adapter(event_cls: type[DomainEvent]) -> TypeAdapter[Any]:
    adapter = _ADAPTERS.get(event_cls)
    if adapter is None:
        adapter = _ADAPTERS[event_cls] = TypeAdapter(event_cls)
    return adapter


def event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Serialize *event* to a JSON-safe dict tagged with its type name."""
    data = _adapter(type(event)).dump_python(event, mode="json")
    data[_TYPE_KEY] = type(event).__qualname__
    return data


def event_from_dict(
    data: dict[str, Any],
    registry: dict[str, type[DomainEvent]],
) -> DomainEvent | None:
    """Rebuild an event from :func:`event_to_dict` output.

    Returns ``None`` if the event type is unknown (forward compat).
    """
    payload = dict(data)
    type_name = payload.pop(_TYPE_KEY, None)
    event_cls = registry.get(type_name) if type_name else None
    if event_cls is None:
        return None
    return _adapter(event_cls).validate_python(payload)


def default_registry() -> dict[str, type[DomainEvent]]:
    return {cls.__qualname__: cls for cls in ALL_DOMAIN_EVENTS}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class IEventStore(Protocol):
    """Append-only event log for replay and audit."""

    async def append(self, event: DomainEvent) -> None:
        """Persist an event.  Idempotent on ``event.event_id``."""
        ...

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
        after_sequence: int | None = None,
        limit: int | None = 10_000,
    ) -> list[DomainEvent]:
        """Read events in append order, with optional filters.

        *after_sequence* skips events whose sequence number is below it;
        ``limit=None`` returns every match.
        """
        ...

    def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        """Yield events lazily."""
        ...

    async def get_by_aggregate(self, aggregate_id: str) -> list[DomainEvent]:
        """Return the events recorded by one aggregate, oldest first."""
        ...


def _matches(
    event: DomainEvent,
    event_type: type[DomainEvent] | None,
    aggregate_id: str | None,
    correlation_id: str | None,
) -> bool:
    if event_type is not None and type(event) is not event_type:
        return False
    if aggregate_id is not None and event.aggregate_id != aggregate_id:
        return False
    if correlation_id is not None and event.correlation_id != correlation_id:
        return False
    return True


def _select(
    sequenced: Iterable[tuple[int, DomainEvent]],
    event_type: type[DomainEvent] | None,
    aggregate_id: str | None,
    correlation_id: str | None,
    after_sequence: int | None,
    limit: int | None,
) -> list[DomainEvent]:
    start = after_sequence or 0
    out: list[DomainEvent] = []
    for seq, event in sequenced:
        if seq < start or not _matches(event, event_type, aggregate_id, correlation_id):
            continue
        out.append(event)
        if limit is not None and len(out) >= limit:
            break
    return out


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventStore:
    """List-backed event store.  No persistence across restarts."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._seen_ids: set[str] = set()

    async def append(self, event: DomainEvent) -> None:
        """Append *event*.  No-op if ``event_id`` already stored."""
        if event.event_id in self._seen_ids:
            return
        self._seen_ids.add(event.event_id)
        self._events.append(event)

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
        after_sequence: int | None = None,
        limit: int | None = 10_000,
    ) -> list[DomainEvent]:
        return _select(
            enumerate(self._events), event_type, aggregate_id, correlation_id, after_sequence, limit
        )

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        for event in list(self._events):
            if event_type is not None and type(event) is not event_type:
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    async def get_by_aggregate(self, aggregate_id: str) -> list[DomainEvent]:
        return await self.read(aggregate_id=aggregate_id, limit=None)

    # -- Testing helpers ---------------------------------------------------

    def clear(self) -> None:
        """Remove all events.  Testing only."""
        self._events.clear()
        self._seen_ids.clear()

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# JSON-Lines file implementation
# ---------------------------------------------------------------------------

class JsonFileEventStore:
    """Append-only JSONL file store.  Durable across restarts.

    Each line is a JSON object with an ``__event_type__`` discriminator.
    Lines that fail to parse, or name an unknown event type, are skipped
    on read.
    """

    def __init__(
        self,
        path: str | Path,
        registry: dict[str, type[DomainEvent]] | None = None,
    ) -> None:
        self._path = Path(path)
        self._seen_ids: set[str] = set()
        self._registry = registry if registry is not None else default_registry()

        if self._path.exists():
            self._load_seen_ids()

    @property
    def path(self) -> Path:
        return self._path

    def _load_seen_ids(self) -> None:
        """Scan the existing file to populate the dedup set."""
        for data in self._iter_records():
            event_id = data.get("event_id")
            if event_id:
                self._seen_ids.add(event_id)

    def _iter_records(self):
        return iter_json_lines(self._path)

    def _iter_sequenced(self) -> Iterator[tuple[int, DomainEvent]]:
        """Yield ``(sequence, event)``; skipped records still use up a number."""
        for seq, data in enumerate(self._iter_records()):
            try:
                event = event_from_dict(data, self._registry)
            except PydanticValidationError:
                logger.warning("Skipping undecodable event %d in %s", seq, self._path)
                continue
            if event is not None:
                yield seq, event

    async def append(self, event: DomainEvent) -> None:
        if event.event_id in self._seen_ids:
            return
        append_json_line(self._path, event_to_dict(event))
        self._seen_ids.add(event.event_id)

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
        after_sequence: int | None = None,
        limit: int | None = 10_000,
    ) -> list[DomainEvent]:
        return _select(
            self._iter_sequenced(), event_type, aggregate_id, correlation_id, after_sequence, limit
        )

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        for _, event in self._iter_sequenced():
            if event_type is not None and type(event) is not event_type:
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    async def get_by_aggregate(self, aggregate_id: str) -> list[DomainEvent]:
        return await self.read(aggregate_id=aggregate_id, limit=None)

    def __len__(self) -> int:
        return len(self._seen_ids)
