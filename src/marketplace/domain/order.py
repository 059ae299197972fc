"""Order aggregate: shopping-to-fulfillment state machine.

::

    PENDING -> PAYMENT_CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED -> COMPLETED
    PENDING | PAYMENT_CONFIRMED | PROCESSING -> CANCELLED

``REFUNDED`` exists in ``OrderStatus`` but no method here moves an order
into it; refunds are driven by the Payment aggregate and reconciled by the
orchestration layer.

Totals are derived, never set: after every change to lines or discount

    subtotal = sum(line total - line tax)
    tax      = sum(line tax)
    total    = max(0, subtotal + tax + shipping - discount)

all in the currency of the first line.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from marketplace.core.clock import IClock, WallClock
from marketplace.core.enums import OrderStatus
from marketplace.core.errors import (
    CurrencyMismatchError,
    InvalidOrderStateError,
    OrderItemValidationError,
    OrderValidationError,
)
from marketplace.core.ids import IOrderNumberGenerator, RandomOrderNumberGenerator, new_id
from marketplace.domain.entity import (
    AuditTrail,
    EventBuffer,
    record_event,
    require_id,
    require_quantity,
    require_text,
    touch,
)
from marketplace.domain.events import (
    ORDER,
    OrderCancelled,
    OrderCompleted,
    OrderDelivered,
    OrderLineSnapshot,
    OrderPaymentConfirmed,
    OrderPlaced,
    OrderShipped,
)
from marketplace.domain.money import Money, ShippingAddress, to_decimal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Allowed source statuses per operation
# ---------------------------------------------------------------------------

_PENDING_ONLY = frozenset({OrderStatus.PENDING})

_OPERATION_SOURCES: dict[str, frozenset[OrderStatus]] = {
    "add items to": _PENDING_ONLY,
    "remove items from": _PENDING_ONLY,
    "apply discount to": _PENDING_ONLY,
    "update shipping address of": _PENDING_ONLY,
    "confirm payment for": _PENDING_ONLY,
    "start processing": frozenset({OrderStatus.PAYMENT_CONFIRMED}),
    "ship": frozenset({OrderStatus.PROCESSING}),
    "deliver": frozenset({OrderStatus.SHIPPED}),
    "complete": frozenset({OrderStatus.DELIVERED}),
    # Refunded orders are excluded too: the refund already settled them.
    "cancel": frozenset(
        {OrderStatus.PENDING, OrderStatus.PAYMENT_CONFIRMED, OrderStatus.PROCESSING}
    ),
}

FINAL_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)


# ---------------------------------------------------------------------------
# OrderItem (owned by Order)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderItem:
    """One order line.  Immutable; the owning order swaps in replacements.

    ``tax_amount`` and ``total_price`` are derived from quantity, unit price
    and tax rate so they can never drift.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    vendor_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Money
    tax_rate: Decimal
    created_at: datetime
    sku: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        product_id: uuid.UUID,
        vendor_id: uuid.UUID,
        product_name: str,
        quantity: int,
        unit_price: Money,
        tax_rate: Decimal | int | str = Decimal("0"),
        sku: str | None = None,
        *,
        clock: IClock | None = None,
    ) -> OrderItem:
        require_id(product_id, "Product ID is required", OrderItemValidationError, "product_id")
        require_id(vendor_id, "Vendor ID is required", OrderItemValidationError, "vendor_id")
        name = require_text(
            product_name, "Product name is required", OrderItemValidationError, "product_name"
        )
        require_quantity(quantity, OrderItemValidationError)
        if unit_price is None or unit_price.is_negative:
            raise OrderItemValidationError("Unit price cannot be negative", field="unit_price")
        rate = to_decimal(tax_rate, "tax_rate")
        if rate < 0 or rate > 1:
            raise OrderItemValidationError("Tax rate must be between 0 and 1", field="tax_rate")

        return cls(
            id=new_id(),
            product_id=product_id,
            vendor_id=vendor_id,
            product_name=name,
            sku=sku.strip() if sku else None,
            quantity=quantity,
            unit_price=unit_price,
            tax_rate=rate,
            created_at=(clock or WallClock()).now(),
        )

    @property
    def currency(self) -> str:
        return self.unit_price.currency

    @property
    def line_subtotal(self) -> Money:
        return self.unit_price.multiply(self.quantity)

    @property
    def tax_amount(self) -> Money:
        return self.line_subtotal.multiply(self.tax_rate)

    @property
    def total_price(self) -> Money:
        return self.line_subtotal.add(self.tax_amount)

    def with_quantity(self, quantity: int, now: datetime) -> OrderItem:
        require_quantity(quantity, OrderItemValidationError)
        return replace(self, quantity=quantity, updated_at=now)

    def snapshot(self) -> OrderLineSnapshot:
        return OrderLineSnapshot(
            product_id=str(self.product_id),
            vendor_id=str(self.vendor_id),
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price.amount,
            total_price=self.total_price.amount,
        )


def _merge_line(lines: list[OrderItem], item: OrderItem, now: datetime) -> list[OrderItem]:
    """Return a new line list with *item* merged by product or appended."""
    merged = list(lines)
    for index, existing in enumerate(merged):
        if existing.product_id == item.product_id:
            merged[index] = existing.with_quantity(existing.quantity + item.quantity, now)
            return merged
    merged.append(item)
    return merged


def _same_currency(expected: str, money: Money) -> Money:
    if money.currency != expected:
        raise CurrencyMismatchError(expected, money.currency)
    return money


# ---------------------------------------------------------------------------
# Order aggregate root
# ---------------------------------------------------------------------------

class Order:
    """Order aggregate root.

    Build with :meth:`create`; the constructor does no validation and is
    meant for rehydration by a repository.  Public attributes are read-only
    by convention; change state only through the business methods.
    """

    AGGREGATE_TYPE = ORDER

    def __init__(
        self,
        *,
        audit: AuditTrail,
        user_id: uuid.UUID,
        order_number: str,
        shipping_address: ShippingAddress,
        items: list[OrderItem],
        shipping_amount: Money,
        discount_amount: Money,
        customer_notes: str | None = None,
        clock: IClock | None = None,
    ) -> None:
        self.audit = audit
        self.events = EventBuffer()
        self.version = 0
        self.clock: IClock = clock or WallClock()

        self.user_id = user_id
        self.order_number = order_number
        self.status = OrderStatus.PENDING
        self.shipping_address = shipping_address
        self._items: list[OrderItem] = list(items)

        self.currency = items[0].currency if items else shipping_amount.currency
        self.subtotal_amount = Money.zero(self.currency)
        self.tax_amount = Money.zero(self.currency)
        self.shipping_amount = shipping_amount
        self.discount_amount = discount_amount
        self.total_amount = Money.zero(self.currency)

        self.payment_id: uuid.UUID | None = None
        self.tracking_number: str | None = None
        self.courier_service: str | None = None
        self.customer_notes = customer_notes
        self.internal_notes: str | None = None

        self.order_date: datetime = audit.created_at
        self.payment_confirmed_at: datetime | None = None
        self.shipped_at: datetime | None = None
        self.delivered_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.cancelled_at: datetime | None = None
        self.cancellation_reason: str | None = None

        self._recalculate_totals()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        user_id: uuid.UUID,
        shipping_address: ShippingAddress,
        items: list[OrderItem],
        shipping_amount: Money | None = None,
        discount_amount: Money | None = None,
        customer_notes: str | None = None,
        *,
        clock: IClock | None = None,
        order_numbers: IOrderNumberGenerator | None = None,
    ) -> Order:
        """Place a new order in ``PENDING`` and record ``OrderPlaced``.

        Lines for the same product are merged.  Shipping and discount
        default to zero in the currency of the first line.
        """
        require_id(user_id, "User ID cannot be empty", OrderValidationError, "user_id")
        if shipping_address is None or not shipping_address.is_complete:
            raise OrderValidationError("Shipping address is required", field="shipping_address")
        items = list(items or [])
        if not items:
            raise OrderValidationError("Order must contain at least one item", field="items")
        if any(item is None for item in items):
            raise OrderItemValidationError("Order item cannot be null", field="items")

        clock = clock or WallClock()
        now = clock.now()
        currency = items[0].currency
        lines: list[OrderItem] = []
        for item in items:
            _same_currency(currency, item.unit_price)
            lines = _merge_line(lines, item, now)

        shipping = _same_currency(currency, shipping_amount or Money.zero(currency))
        discount = _same_currency(currency, discount_amount or Money.zero(currency))
        if shipping.is_negative:
            raise OrderValidationError("Shipping amount cannot be negative", field="shipping_amount")
        if discount.is_negative:
            raise OrderValidationError("Discount amount cannot be negative", field="discount_amount")

        generator = order_numbers or RandomOrderNumberGenerator()
        order = cls(
            audit=AuditTrail(id=new_id(), created_at=now),
            user_id=user_id,
            order_number=generator.next_number(now),
            shipping_address=shipping_address,
            items=lines,
            shipping_amount=shipping,
            discount_amount=discount,
            customer_notes=customer_notes,
            clock=clock,
        )
        record_event(
            order,
            OrderPlaced,
            order_id=str(order.id),
            user_id=str(user_id),
            order_number=order.order_number,
            total_amount=order.total_amount.amount,
            currency=order.currency,
            items=tuple(line.snapshot() for line in order._items),
        )
        logger.debug(
            "Order placed: id=%s number=%s lines=%d total=%s",
            order.id,
            order.order_number,
            len(order._items),
            order.total_amount,
        )
        return order

    # ------------------------------------------------------------------
    # Identity / audit
    # ------------------------------------------------------------------

    @property
    def id(self) -> uuid.UUID:
        return self.audit.id

    @property
    def items(self) -> tuple[OrderItem, ...]:
        return tuple(self._items)

    # ------------------------------------------------------------------
    # Line management (PENDING only)
    # ------------------------------------------------------------------

    def add_item(self, item: OrderItem) -> None:
        """Add a line, merging quantities if the product is already present."""
        self._guard("add items to")
        if item is None:
            raise OrderItemValidationError("Order item cannot be null", field="item")
        _same_currency(self.currency, item.unit_price)

        now = self.clock.now()
        self._items = _merge_line(self._items, item, now)
        self._recalculate_totals()
        self.audit.touch(now)
        logger.debug("Order %s: item added for product %s", self.id, item.product_id)

    def remove_item(self, item_id: uuid.UUID) -> None:
        """Remove a line.  An order can never be left without lines."""
        self._guard("remove items from")
        remaining = [line for line in self._items if line.id != item_id]
        if len(remaining) == len(self._items):
            raise OrderItemValidationError(
                f"Order item with ID {item_id} not found", field="item_id"
            )
        if not remaining:
            raise OrderValidationError("Order must contain at least one item", field="items")

        self._items = remaining
        self._recalculate_totals()
        touch(self)

    def apply_discount(self, discount_amount: Money) -> None:
        """Replace the order discount.  Zero clears it."""
        self._guard("apply discount to")
        if discount_amount is None or discount_amount.is_negative:
            raise OrderValidationError("Discount amount cannot be negative", field="discount_amount")
        _same_currency(self.currency, discount_amount)

        self.discount_amount = discount_amount
        self._recalculate_totals()
        touch(self)

    def update_shipping_address(self, address: ShippingAddress) -> None:
        self._guard("update shipping address of")
        if address is None or not address.is_complete:
            raise OrderValidationError("Shipping address is required", field="shipping_address")
        self.shipping_address = address
        touch(self)

    def update_internal_notes(self, notes: str | None) -> None:
        """Staff notes.  Allowed in any status."""
        self.internal_notes = notes
        touch(self)

    # ------------------------------------------------------------------
    # Fulfillment transitions
    # ------------------------------------------------------------------

    def confirm_payment(self, payment_id: uuid.UUID) -> None:
        self._guard("confirm payment for")
        require_id(payment_id, "Payment ID cannot be empty", OrderValidationError, "payment_id")

        now = touch(self)
        self.payment_id = payment_id
        self.payment_confirmed_at = now
        self._set_status(OrderStatus.PAYMENT_CONFIRMED)
        record_event(self, OrderPaymentConfirmed, order_id=str(self.id), payment_id=str(payment_id))

    def start_processing(self) -> None:
        self._guard("start processing")
        touch(self)
        self._set_status(OrderStatus.PROCESSING)

    def ship(self, tracking_number: str, courier_service: str) -> None:
        self._guard("ship")
        tracking = require_text(
            tracking_number, "Tracking number is required", OrderValidationError, "tracking_number"
        )
        courier = require_text(
            courier_service, "Courier service is required", OrderValidationError, "courier_service"
        )

        now = touch(self)
        self.tracking_number = tracking
        self.courier_service = courier
        self.shipped_at = now
        self._set_status(OrderStatus.SHIPPED)
        record_event(
            self,
            OrderShipped,
            order_id=str(self.id),
            tracking_number=tracking,
            courier_service=courier,
        )

    def mark_delivered(self) -> None:
        self._guard("deliver")
        self.delivered_at = touch(self)
        self._set_status(OrderStatus.DELIVERED)
        record_event(self, OrderDelivered, order_id=str(self.id))

    def complete(self) -> None:
        self._guard("complete")
        self.completed_at = touch(self)
        self._set_status(OrderStatus.COMPLETED)
        record_event(self, OrderCompleted, order_id=str(self.id))

    def cancel(self, reason: str) -> None:
        self._guard("cancel")
        text = require_text(reason, "Cancellation reason is required", OrderValidationError, "reason")

        self.cancelled_at = touch(self)
        self.cancellation_reason = text
        self._set_status(OrderStatus.CANCELLED)
        record_event(self, OrderCancelled, order_id=str(self.id), reason=text)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_be_cancelled(self) -> bool:
        return self.status in _OPERATION_SOURCES["cancel"]

    def can_be_modified(self) -> bool:
        return self.status == OrderStatus.PENDING

    def is_in_final_state(self) -> bool:
        return self.status in FINAL_STATUSES

    def total_item_count(self) -> int:
        return sum(line.quantity for line in self._items)

    def vendor_ids(self) -> list[uuid.UUID]:
        """Distinct vendors, in line order."""
        return list(dict.fromkeys(line.vendor_id for line in self._items))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, operation: str) -> None:
        if self.status not in _OPERATION_SOURCES[operation]:
            raise InvalidOrderStateError(self.status, operation)

    def _set_status(self, new_status: OrderStatus) -> None:
        old_status = self.status
        self.status = new_status
        logger.debug(
            "Order state transition: id=%s %s -> %s",
            self.id,
            old_status.value,
            new_status.value,
        )

    def _recalculate_totals(self) -> None:
        if not self._items:
            self.subtotal_amount = Money.zero(self.currency)
            self.tax_amount = Money.zero(self.currency)
            self.total_amount = Money.zero(self.currency)
            return

        currency = self._items[0].currency
        subtotal = sum(
            (line.total_price.amount - line.tax_amount.amount for line in self._items),
            Decimal("0"),
        )
        tax = sum((line.tax_amount.amount for line in self._items), Decimal("0"))
        total = subtotal + tax + self.shipping_amount.amount - self.discount_amount.amount

        self.currency = currency
        self.subtotal_amount = Money(subtotal, currency)
        self.tax_amount = Money(tax, currency)
        self.total_amount = Money(max(Decimal("0"), total), currency)
