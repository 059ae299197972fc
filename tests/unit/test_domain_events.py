"""Tests for the marketplace domain events (``domain/events.py``).

Covers:
- Every event type instantiates with defaults and is frozen.
- ``event_id`` is unique across instances.
- ``WRITE_OWNERSHIP`` maps every event type to its aggregate type.
- Events recorded by aggregates carry the aggregate id and source.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

import pytest

from marketplace.domain.events import (
    ALL_DOMAIN_EVENTS,
    ORDER,
    PAYMENT,
    PRODUCT,
    VENDOR,
    WRITE_OWNERSHIP,
    DomainEvent,
    OrderPlaced,
    PaymentInitiated,
    ProductCreated,
    VendorRegistered,
)


class TestDomainEventBase:
    def test_default_fields_populated(self):
        e = DomainEvent()
        assert isinstance(e.event_id, str)
        assert len(e.event_id) == 36
        assert isinstance(e.timestamp, datetime)
        assert e.timestamp.tzinfo is not None
        assert e.aggregate_id == ""
        assert e.correlation_id == ""
        assert e.source == ""

    def test_event_id_unique(self):
        ids = {DomainEvent().event_id for _ in range(100)}
        assert len(ids) == 100

    def test_frozen(self):
        e = DomainEvent()
        with pytest.raises(dataclasses.FrozenInstanceError):
            e.source = "oops"  # type: ignore[misc]


class TestAllEvents:
    @pytest.mark.parametrize("cls", ALL_DOMAIN_EVENTS)
    def test_instantiates_with_defaults(self, cls: type[DomainEvent]):
        event = cls(source=WRITE_OWNERSHIP[cls])
        assert isinstance(event, DomainEvent)

    @pytest.mark.parametrize("cls", ALL_DOMAIN_EVENTS)
    def test_frozen(self, cls: type[DomainEvent]):
        event = cls(source=WRITE_OWNERSHIP[cls])
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.source = "mutated"  # type: ignore[misc]


class TestWriteOwnership:
    def test_owners_are_aggregate_types(self):
        assert set(WRITE_OWNERSHIP.values()) == {ORDER, PAYMENT, PRODUCT, VENDOR}

    def test_event_names_match_owner(self):
        for cls, owner in WRITE_OWNERSHIP.items():
            assert cls.__name__.lower().startswith(owner), cls.__name__

    def test_event_count(self):
        assert len(ALL_DOMAIN_EVENTS) == 20


class TestRecordedEvents:
    """Events produced by factories are stamped with identity and source."""

    def test_order_placed(self, make_order, make_item):
        order = make_order(items=[make_item(quantity=2)])
        (event,) = order.events.drain()
        assert isinstance(event, OrderPlaced)
        assert event.source == ORDER
        assert event.aggregate_id == str(order.id)
        assert event.order_number == order.order_number
        assert event.items[0].quantity == 2

    def test_payment_initiated(self, make_payment):
        payment = make_payment()
        (event,) = payment.events.drain()
        assert isinstance(event, PaymentInitiated)
        assert event.source == PAYMENT
        assert event.method == "credit_card"

    def test_product_created(self, make_product):
        product = make_product()
        (event,) = product.events.drain()
        assert isinstance(event, ProductCreated)
        assert event.source == PRODUCT
        assert event.product_id == str(product.id)

    def test_vendor_registered(self, make_vendor):
        vendor = make_vendor()
        (event,) = vendor.events.drain()
        assert isinstance(event, VendorRegistered)
        assert event.source == VENDOR
        assert event.email == "sales@acme.example"
