"""Persist-then-publish for a single aggregate.

Events are handed to the bus only after the aggregate has been saved, so
nothing is announced for state that was never committed.  If the save
fails, the pending buffer is left untouched and the caller can reload,
reapply and retry.

If publishing fails partway (the event store rejects an append, or an
event breaks write ownership), the events not yet published go back into
the aggregate's buffer and the error propagates.  ``publish_pending`` can
then deliver them without saving again.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from marketplace.domain.entity import Aggregate, drain_events
from marketplace.domain.events import DomainEvent
from marketplace.infrastructure.event_bus import IEventBus
from marketplace.infrastructure.repository import IRepository

logger = logging.getLogger(__name__)


async def save_and_publish(
    aggregate: Aggregate,
    repository: IRepository,
    bus: IEventBus,
    *,
    correlation_id: str = "",
) -> list[DomainEvent]:
    """Save *aggregate*, then drain and publish its events in order.

    Parameters
    ----------
    correlation_id
        When set, stamped onto every event that does not already carry
        one, so handlers can group events caused by the same command.

    Returns
    -------
    list[DomainEvent]
        The events that were published.

    Raises
    ------
    ConcurrencyConflictError
        From the repository.  No events are drained or published.
    """
    await repository.save(aggregate)
    return await publish_pending(aggregate, bus, correlation_id=correlation_id)


async def publish_pending(
    aggregate: Aggregate,
    bus: IEventBus,
    *,
    correlation_id: str = "",
) -> list[DomainEvent]:
    """Drain and publish the events of an already saved *aggregate*.

    On a publish error the failed event and everything after it are
    restored to the buffer, in order, before the error is re-raised.
    """
    events = drain_events(aggregate)
    if correlation_id:
        events = [_correlate(event, correlation_id) for event in events]

    for index, event in enumerate(events):
        try:
            await bus.publish(event)
        except Exception:
            aggregate.events.restore(events[index:])
            logger.warning(
                "Publish failed for %s %s; %d event(s) kept pending",
                aggregate.AGGREGATE_TYPE,
                aggregate.id,
                len(events) - index,
            )
            raise

    logger.debug(
        "Published %d event(s) for %s %s",
        len(events),
        aggregate.AGGREGATE_TYPE,
        aggregate.id,
    )
    return events


def _correlate(event: DomainEvent, correlation_id: str) -> DomainEvent:
    if event.correlation_id:
        return event
    return replace(event, correlation_id=correlation_id)
