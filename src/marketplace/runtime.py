"""Runtime: single composition root for the marketplace core.

Wires the clock, order-number generator, repositories, event store and
event bus from ``Settings`` so command handlers receive ready-made
collaborators.

Usage::

    from marketplace.runtime import Runtime

    runtime = Runtime.from_config(load_settings("marketplace.toml"))
    await runtime.start()

    order = Order.create(..., clock=runtime.clock, order_numbers=runtime.order_numbers)
    await runtime.commit(order)
"""

from __future__ import annotations

import logging
import random

from marketplace.core.clock import IClock, WallClock
from marketplace.core.config import Settings
from marketplace.core.enums import EventStoreBackend, OrderNumberStrategy
from marketplace.core.ids import (
    IOrderNumberGenerator,
    RandomOrderNumberGenerator,
    SequentialOrderNumberGenerator,
)
from marketplace.domain.entity import Aggregate
from marketplace.domain.events import ORDER, PAYMENT, PRODUCT, VENDOR, DomainEvent
from marketplace.domain.order import Order
from marketplace.domain.payment import Payment
from marketplace.domain.product import Product
from marketplace.domain.vendor import Vendor
from marketplace.infrastructure.event_bus import InMemoryEventBus
from marketplace.infrastructure.event_store import (
    IEventStore,
    InMemoryEventStore,
    JsonFileEventStore,
)
from marketplace.infrastructure.repository import InMemoryRepository
from marketplace.infrastructure.unit_of_work import save_and_publish
from marketplace.observability.logger import setup_logging

logger = logging.getLogger(__name__)


def build_order_numbers(settings: Settings) -> IOrderNumberGenerator:
    cfg = settings.order_numbers
    if cfg.strategy == OrderNumberStrategy.SEQUENTIAL:
        return SequentialOrderNumberGenerator(prefix=cfg.prefix, start=cfg.sequence_start)
    return RandomOrderNumberGenerator(prefix=cfg.prefix, rng=random.Random(cfg.random_seed))


def build_event_store(settings: Settings) -> IEventStore:
    cfg = settings.event_store
    if cfg.backend == EventStoreBackend.JSONL:
        return JsonFileEventStore(cfg.path)
    return InMemoryEventStore()


class Runtime:
    """Holds the wired collaborators.

    Parameters
    ----------
    settings:
        Application settings.
    clock:
        Shared by every aggregate created through this runtime.
    order_numbers:
        Generator passed to ``Order.create``.
    event_store:
        Outbox the bus appends every published event to.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        clock: IClock,
        order_numbers: IOrderNumberGenerator,
        event_store: IEventStore,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.order_numbers = order_numbers
        self.event_store = event_store
        self.bus = InMemoryEventBus(
            enforce_ownership=settings.enforce_event_ownership,
            event_store=event_store,
        )
        self.orders: InMemoryRepository[Order] = InMemoryRepository(ORDER)
        self.payments: InMemoryRepository[Payment] = InMemoryRepository(PAYMENT)
        self.products: InMemoryRepository[Product] = InMemoryRepository(PRODUCT)
        self.vendors: InMemoryRepository[Vendor] = InMemoryRepository(VENDOR)
        self._repositories: dict[str, InMemoryRepository] = {
            ORDER: self.orders,
            PAYMENT: self.payments,
            PRODUCT: self.products,
            VENDOR: self.vendors,
        }

    @classmethod
    def from_config(
        cls,
        settings: Settings,
        *,
        clock: IClock | None = None,
        order_numbers: IOrderNumberGenerator | None = None,
        configure_logging: bool = True,
    ) -> Runtime:
        """Build a runtime from *settings*.

        ``clock`` and ``order_numbers`` override what the settings would
        produce, which is how tests pin time and numbering.
        """
        if configure_logging:
            setup_logging(
                settings.observability.log_level,
                settings.observability.log_format,
            )
        runtime = cls(
            settings,
            clock=clock or WallClock(),
            order_numbers=order_numbers or build_order_numbers(settings),
            event_store=build_event_store(settings),
        )
        logger.info(
            "Runtime ready: event_store=%s order_numbers=%s ownership=%s",
            settings.event_store.backend.value,
            settings.order_numbers.strategy.value,
            settings.enforce_event_ownership,
        )
        return runtime

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        await self.bus.start()

    async def stop(self) -> None:
        await self.bus.stop()

    # -- Commands ----------------------------------------------------------

    def repository_for(self, aggregate: Aggregate) -> InMemoryRepository:
        return self._repositories[aggregate.AGGREGATE_TYPE]

    async def commit(self, aggregate: Aggregate, *, correlation_id: str = "") -> list[DomainEvent]:
        """Save *aggregate* in its repository, then publish its events."""
        return await save_and_publish(
            aggregate,
            self.repository_for(aggregate),
            self.bus,
            correlation_id=correlation_id,
        )
