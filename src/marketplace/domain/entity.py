"""Identity, audit fields and the pending-event buffer shared by aggregates.

Aggregates *embed* these pieces rather than inheriting them:

* ``audit``    an ``AuditTrail`` (id, created/updated/deleted timestamps)
* ``events``   an ``EventBuffer`` of not-yet-dispatched domain events
* ``version``  optimistic-concurrency token owned by the repository
* ``clock``    the injected ``IClock`` every timestamp is read from

Shared behaviour lives in the free functions at the bottom of the module.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, TypeVar

from marketplace.core.clock import IClock
from marketplace.core.errors import ValidationError
from marketplace.core.ids import is_nil
from marketplace.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent)
C = TypeVar("C", bound=Enum)


@dataclass
class AuditTrail:
    """Identity plus audit timestamps."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        if is_nil(self.id):
            raise ValidationError("id may not be empty", field="id")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def touch(self, now: datetime) -> None:
        self.updated_at = now

    def mark_deleted(self, now: datetime) -> None:
        """Soft-delete.  A second call keeps the original timestamp."""
        if self.deleted_at is None:
            self.deleted_at = now
            self.updated_at = now


class EventBuffer:
    """Ordered buffer of events recorded during a business method.

    ``drain()`` is the only way to read the events: it hands them over in
    recording order and leaves the buffer empty, so each event is
    dispatched at most once.
    """

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []

    def record(self, event: DomainEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[DomainEvent]:
        drained, self._events = self._events, []
        return drained

    def restore(self, events: list[DomainEvent]) -> None:
        """Put undelivered *events* back ahead of anything recorded since."""
        self._events = list(events) + self._events

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)


class Aggregate(Protocol):
    """Structural type satisfied by every aggregate root."""

    AGGREGATE_TYPE: str
    audit: AuditTrail
    events: EventBuffer
    version: int
    clock: IClock

    @property
    def id(self) -> uuid.UUID: ...


# ---------------------------------------------------------------------------
# Shared operations
# ---------------------------------------------------------------------------

def record_event(aggregate: Aggregate, event_cls: type[E], **fields: Any) -> E:
    """Build *event_cls* stamped with the aggregate's identity and clock."""
    event = event_cls(
        timestamp=aggregate.clock.now(),
        aggregate_id=str(aggregate.id),
        source=aggregate.AGGREGATE_TYPE,
        **fields,
    )
    aggregate.events.record(event)
    return event


def touch(aggregate: Aggregate) -> datetime:
    """Stamp ``updated_at`` and return the timestamp used."""
    now = aggregate.clock.now()
    aggregate.audit.touch(now)
    return now


def drain_events(aggregate: Aggregate) -> list[DomainEvent]:
    """Hand over the aggregate's pending events.

    Call only after the aggregate has been durably saved.
    """
    return aggregate.events.drain()


def soft_delete(aggregate: Aggregate) -> None:
    aggregate.audit.mark_deleted(aggregate.clock.now())


# ---------------------------------------------------------------------------
# Input guards
# ---------------------------------------------------------------------------

def require_text(value: str | None, message: str, error: type[ValidationError], field: str) -> str:
    """Return *value* stripped, or raise *error* when blank."""
    if value is None or not str(value).strip():
        raise error(message, field=field)
    return str(value).strip()


def require_id(value: uuid.UUID | None, message: str, error: type[ValidationError], field: str) -> uuid.UUID:
    if is_nil(value):
        raise error(message, field=field)
    return value  # type: ignore[return-value]


def require_quantity(value: int, error: type[ValidationError], field: str = "quantity") -> int:
    """Positive whole-number quantities only."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise error(f"{field} must be an integer, got {value!r}", field=field)
    if value <= 0:
        raise error("Quantity must be greater than zero", field=field)
    return value


def require_member(value: Any, choices: type[C], error: type[ValidationError], field: str) -> C:
    """Coerce *value* into the enum *choices*, or raise *error*."""
    try:
        return choices(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in choices)
        raise error(f"Invalid {field} {value!r}; expected one of: {allowed}", field=field) from exc
