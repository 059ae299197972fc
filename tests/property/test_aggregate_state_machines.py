"""Property test: aggregate state machines follow their operation tables.

Random operation sequences are applied to orders, payments and vendors.
Each call must succeed exactly when the current status is an allowed
source for that operation; a rejected call leaves status, version and
pending events untouched.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from marketplace.core.clock import SimClock
from marketplace.core.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
)
from marketplace.core.errors import StateConflictError
from marketplace.domain import order as order_module
from marketplace.domain import payment as payment_module
from marketplace.domain import vendor as vendor_module
from marketplace.domain.money import Address, Money, ShippingAddress
from marketplace.domain.order import Order, OrderItem
from marketplace.domain.payment import Payment
from marketplace.domain.vendor import Vendor


def _clock() -> SimClock:
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


def _snapshot(aggregate) -> tuple:
    return (aggregate.status, aggregate.version, len(aggregate.events))


def _apply(aggregate, table, operation, call) -> None:
    before = _snapshot(aggregate)
    allowed = aggregate.status in table[operation]
    if allowed:
        call()
    else:
        with pytest.raises(StateConflictError) as info:
            call()
        assert info.value.operation == operation
        assert _snapshot(aggregate) == before
    assert aggregate.status in type(aggregate.status)


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------

ORDER_CALLS = {
    "confirm payment for": lambda o: o.confirm_payment(uuid.uuid4()),
    "start processing": lambda o: o.start_processing(),
    "ship": lambda o: o.ship("TRK-1", "UPS"),
    "deliver": lambda o: o.mark_delivered(),
    "complete": lambda o: o.complete(),
    "cancel": lambda o: o.cancel("changed mind"),
    "apply discount to": lambda o: o.apply_discount(Money(Decimal("1"), "USD")),
}


def _order() -> Order:
    clock = _clock()
    item = OrderItem.create(
        product_id=uuid.uuid4(),
        vendor_id=uuid.uuid4(),
        product_name="Widget",
        quantity=1,
        unit_price=Money(Decimal("100"), "USD"),
        clock=clock,
    )
    address = ShippingAddress(
        street="1 Market St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
        recipient_name="Pat Doe",
        phone_number="+1-555-0100",
    )
    return Order.create(uuid.uuid4(), address, [item], clock=clock)


@given(st.lists(st.sampled_from(sorted(ORDER_CALLS)), max_size=12))
@settings(max_examples=300)
def test_order_operations_follow_table(operations):
    order = _order()
    for operation in operations:
        _apply(order, order_module._OPERATION_SOURCES, operation,
               lambda: ORDER_CALLS[operation](order))
    assert order.status != OrderStatus.REFUNDED
    if order.status in order_module.FINAL_STATUSES:
        assert not order.can_be_cancelled()


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

PAYMENT_CALLS = {
    "start processing": lambda p: p.mark_processing(),
    "complete": lambda p: p.complete("txn-1"),
    "fail": lambda p: p.fail("declined"),
    "refund": lambda p: p.refund(Money(Decimal("10"), "USD"), "rf-1"),
    "cancel": lambda p: p.cancel(),
}


@given(st.lists(st.sampled_from(sorted(PAYMENT_CALLS)), max_size=12))
@settings(max_examples=300)
def test_payment_operations_follow_table(operations):
    payment = Payment.initiate(
        uuid.uuid4(),
        uuid.uuid4(),
        Money(Decimal("100"), "USD"),
        PaymentMethod.CREDIT_CARD,
        PaymentProvider.STRIPE,
        clock=_clock(),
    )
    refunds = 0
    for operation in operations:
        if operation == "refund" and payment.status == PaymentStatus.COMPLETED:
            refunds += 1
        _apply(payment, payment_module._OPERATION_SOURCES, operation,
               lambda: PAYMENT_CALLS[operation](payment))
    assert refunds <= 1
    if payment.is_refunded():
        assert payment.transaction_id == "txn-1"


# ---------------------------------------------------------------------------
# Vendor
# ---------------------------------------------------------------------------

VENDOR_CALLS = {
    "approve": lambda v: v.approve(),
    "reject": lambda v: v.reject("incomplete"),
    "suspend": lambda v: v.suspend("chargebacks"),
    "reactivate": lambda v: v.reactivate(),
    "update logo of": lambda v: v.update_logo("https://cdn.example.com/logo.png"),
}


@given(st.lists(st.sampled_from(sorted(VENDOR_CALLS)), max_size=12))
@settings(max_examples=300)
def test_vendor_operations_follow_table(operations):
    address = Address(
        street="1 Market St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
    )
    vendor = Vendor.register(
        uuid.uuid4(),
        "Acme Goods",
        "sales@acme.example",
        "+1-555-0101",
        "Ada Acme",
        address,
        clock=_clock(),
    )
    for operation in operations:
        _apply(vendor, vendor_module._OPERATION_SOURCES, operation,
               lambda: VENDOR_CALLS[operation](vendor))
    assert vendor.can_sell_products() == vendor.is_approved()
