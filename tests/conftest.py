"""Shared fixtures for the marketplace test suite."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from marketplace.core.clock import SimClock
from marketplace.core.enums import PaymentMethod, PaymentProvider, ProductCategory
from marketplace.core.ids import SequentialOrderNumberGenerator
from marketplace.domain.money import Address, Money, ShippingAddress
from marketplace.domain.order import Order, OrderItem
from marketplace.domain.payment import Payment
from marketplace.domain.product import Product
from marketplace.domain.vendor import Vendor


# ---------------------------------------------------------------------------
# Time and identifiers
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Deterministic clock starting at 2024-06-01 UTC."""
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def order_numbers() -> SequentialOrderNumberGenerator:
    return SequentialOrderNumberGenerator(prefix="ORD", start=1)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@pytest.fixture
def address() -> Address:
    return Address(
        street="1 Market St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
    )


@pytest.fixture
def shipping_address() -> ShippingAddress:
    return ShippingAddress(
        street="1 Market St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
        recipient_name="Pat Doe",
        phone_number="+1-555-0100",
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_item(sim_clock):
    """Build an ``OrderItem``; every argument is overridable."""

    def _make(**overrides) -> OrderItem:
        defaults = dict(
            product_id=uuid.uuid4(),
            vendor_id=uuid.uuid4(),
            product_name="Widget",
            quantity=1,
            unit_price=Money(Decimal("100"), "USD"),
            tax_rate=Decimal("0"),
            sku="WID-1",
        )
        defaults.update(overrides)
        return OrderItem.create(**defaults, clock=sim_clock)

    return _make


@pytest.fixture
def make_order(sim_clock, order_numbers, shipping_address, user_id, make_item):
    """Build a pending ``Order`` with one line unless *items* is given."""

    def _make(items=None, **overrides) -> Order:
        defaults = dict(
            user_id=user_id,
            shipping_address=shipping_address,
            items=items if items is not None else [make_item()],
        )
        defaults.update(overrides)
        return Order.create(**defaults, clock=sim_clock, order_numbers=order_numbers)

    return _make


@pytest.fixture
def make_payment(sim_clock, user_id):
    def _make(**overrides) -> Payment:
        defaults = dict(
            order_id=uuid.uuid4(),
            user_id=user_id,
            amount=Money(Decimal("230"), "USD"),
            method=PaymentMethod.CREDIT_CARD,
            provider=PaymentProvider.STRIPE,
            card_last4="4242",
            card_brand="visa",
        )
        defaults.update(overrides)
        return Payment.initiate(**defaults, clock=sim_clock)

    return _make


@pytest.fixture
def make_product(sim_clock):
    """Build a draft ``Product`` with stock 10 unless overridden."""

    def _make(**overrides) -> Product:
        defaults = dict(
            vendor_id=uuid.uuid4(),
            name="Widget",
            sku="wid-1",
            price=Money(Decimal("25"), "USD"),
            category=ProductCategory.HOME,
            description="A useful widget",
            initial_stock=10,
        )
        defaults.update(overrides)
        return Product.create(**defaults, clock=sim_clock)

    return _make


@pytest.fixture
def make_published_product(make_product):
    """Build a product that has a primary image and has been published."""

    def _make(**overrides) -> Product:
        product = make_product(**overrides)
        product.add_image("https://cdn.example.com/w.png", "front", 0, is_primary=True)
        product.publish()
        return product

    return _make


@pytest.fixture
def make_vendor(sim_clock, address, user_id):
    def _make(**overrides) -> Vendor:
        defaults = dict(
            user_id=user_id,
            business_name="Acme Goods",
            email="Sales@Acme.Example",
            phone_number="+1-555-0101",
            contact_person_name="Ada Acme",
            business_address=address,
            commission_rate=Decimal("0.15"),
        )
        defaults.update(overrides)
        return Vendor.register(**defaults, clock=sim_clock)

    return _make
