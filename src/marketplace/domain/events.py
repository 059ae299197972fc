"""Canonical domain events emitted by the marketplace aggregates.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  Every event type has exactly **one writer** aggregate type; see
    ``WRITE_OWNERSHIP``.
3.  ``event_id`` is a UUID4 generated at creation time; it serves as the
    idempotency / dedup key in the event store.
4.  ``aggregate_id`` is the id of the aggregate that recorded the event.
5.  ``timestamp`` comes from the aggregate's injected clock, never from the
    wall clock directly.
6.  ``correlation_id`` is left for the orchestration layer to group events
    that stem from the same external command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from marketplace.core.ids import new_event_id as _uuid
from marketplace.core.ids import utc_now as _now

ORDER = "order"
PAYMENT = "payment"
PRODUCT = "product"
VENDOR = "vendor"

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Immutable base for every domain event.

    Shared fields
    ~~~~~~~~~~~~~
    event_id        Unique identity (UUID4).  Idempotency key.
    timestamp       UTC time the change happened.
    aggregate_id    Id of the recording aggregate.
    correlation_id  Groups events from the same external command.
    source          Aggregate type that produced this event.
    """

    event_id: str = field(default_factory=_uuid)
    timestamp: datetime = field(default_factory=_now)
    aggregate_id: str = ""
    correlation_id: str = ""
    source: str = ""


# =========================================================================
# Order  (writer: order)
# =========================================================================

@dataclass(frozen=True)
class OrderLineSnapshot:
    """Order line as it stood when the order was placed."""

    product_id: str = ""
    vendor_id: str = ""
    product_name: str = ""
    quantity: int = 0
    unit_price: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    order_id: str = ""
    user_id: str = ""
    order_number: str = ""
    total_amount: Decimal = Decimal("0")
    currency: str = ""
    items: tuple[OrderLineSnapshot, ...] = ()


@dataclass(frozen=True)
class OrderPaymentConfirmed(DomainEvent):
    order_id: str = ""
    payment_id: str = ""


@dataclass(frozen=True)
class OrderShipped(DomainEvent):
    order_id: str = ""
    tracking_number: str = ""
    courier_service: str = ""


@dataclass(frozen=True)
class OrderDelivered(DomainEvent):
    order_id: str = ""


@dataclass(frozen=True)
class OrderCompleted(DomainEvent):
    order_id: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    order_id: str = ""
    reason: str = ""


# =========================================================================
# Payment  (writer: payment)
# =========================================================================

@dataclass(frozen=True)
class PaymentInitiated(DomainEvent):
    payment_id: str = ""
    order_id: str = ""
    user_id: str = ""
    amount: Decimal = Decimal("0")
    currency: str = ""
    method: str = ""


@dataclass(frozen=True)
class PaymentCompleted(DomainEvent):
    payment_id: str = ""
    order_id: str = ""
    transaction_id: str = ""


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    payment_id: str = ""
    order_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class PaymentRefunded(DomainEvent):
    payment_id: str = ""
    order_id: str = ""
    refund_amount: Decimal = Decimal("0")
    currency: str = ""
    refund_transaction_id: str = ""


# =========================================================================
# Product  (writer: product)
# =========================================================================

@dataclass(frozen=True)
class ProductCreated(DomainEvent):
    product_id: str = ""
    vendor_id: str = ""
    name: str = ""
    price: Decimal = Decimal("0")
    currency: str = ""


@dataclass(frozen=True)
class ProductPriceChanged(DomainEvent):
    product_id: str = ""
    old_price: Decimal = Decimal("0")
    new_price: Decimal = Decimal("0")
    currency: str = ""


@dataclass(frozen=True)
class ProductStockUpdated(DomainEvent):
    product_id: str = ""
    old_stock: int = 0
    new_stock: int = 0


@dataclass(frozen=True)
class ProductPublished(DomainEvent):
    product_id: str = ""
    status: str = ""  # active | out_of_stock


@dataclass(frozen=True)
class ProductDiscontinued(DomainEvent):
    product_id: str = ""


# =========================================================================
# Vendor  (writer: vendor)
# =========================================================================

@dataclass(frozen=True)
class VendorRegistered(DomainEvent):
    vendor_id: str = ""
    user_id: str = ""
    business_name: str = ""
    email: str = ""


@dataclass(frozen=True)
class VendorApproved(DomainEvent):
    vendor_id: str = ""


@dataclass(frozen=True)
class VendorRejected(DomainEvent):
    vendor_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class VendorSuspended(DomainEvent):
    vendor_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class VendorReactivated(DomainEvent):
    vendor_id: str = ""


# =========================================================================
# Write-ownership registry
# =========================================================================

#: Maps each event type to the *only* ``source`` value allowed to produce
#: it.  The event bus uses this table to reject misattributed publishes.
WRITE_OWNERSHIP: dict[type[DomainEvent], str] = {
    # Order
    OrderPlaced: ORDER,
    OrderPaymentConfirmed: ORDER,
    OrderShipped: ORDER,
    OrderDelivered: ORDER,
    OrderCompleted: ORDER,
    OrderCancelled: ORDER,
    # Payment
    PaymentInitiated: PAYMENT,
    PaymentCompleted: PAYMENT,
    PaymentFailed: PAYMENT,
    PaymentRefunded: PAYMENT,
    # Product
    ProductCreated: PRODUCT,
    ProductPriceChanged: PRODUCT,
    ProductStockUpdated: PRODUCT,
    ProductPublished: PRODUCT,
    ProductDiscontinued: PRODUCT,
    # Vendor
    VendorRegistered: VENDOR,
    VendorApproved: VENDOR,
    VendorRejected: VENDOR,
    VendorSuspended: VENDOR,
    VendorReactivated: VENDOR,
}


#: All event types in a deterministic order.
ALL_DOMAIN_EVENTS: tuple[type[DomainEvent], ...] = tuple(WRITE_OWNERSHIP.keys())
