"""Payment aggregate: one payment attempt against an order.

::

    PENDING -> PROCESSING -> COMPLETED -> REFUNDED (once)
    PENDING | PROCESSING -> COMPLETED
    PENDING -> CANCELLED
    anything but COMPLETED | REFUNDED -> FAILED
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime

from marketplace.core.clock import IClock, WallClock
from marketplace.core.enums import PaymentMethod, PaymentProvider, PaymentStatus
from marketplace.core.errors import (
    CurrencyMismatchError,
    InvalidPaymentStateError,
    PaymentValidationError,
)
from marketplace.core.ids import new_id
from marketplace.domain.entity import (
    AuditTrail,
    EventBuffer,
    record_event,
    require_id,
    require_member,
    require_text,
    touch,
)
from marketplace.domain.events import (
    PAYMENT,
    PaymentCompleted,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
)
from marketplace.domain.money import Money

logger = logging.getLogger(__name__)

_CARD_LAST4 = re.compile(r"^\d{4}$")

_OPERATION_SOURCES: dict[str, frozenset[PaymentStatus]] = {
    "start processing": frozenset({PaymentStatus.PENDING}),
    "complete": frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    "fail": frozenset(
        {
            PaymentStatus.PENDING,
            PaymentStatus.PROCESSING,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }
    ),
    "refund": frozenset({PaymentStatus.COMPLETED}),
    "cancel": frozenset({PaymentStatus.PENDING}),
}


class Payment:
    """Payment aggregate root.

    The refund, when recorded, never exceeds ``amount`` and there is at
    most one: refunding moves the payment to ``REFUNDED``, from which no
    further refund is accepted.
    """

    AGGREGATE_TYPE = PAYMENT

    def __init__(
        self,
        *,
        audit: AuditTrail,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
        amount: Money,
        method: PaymentMethod,
        provider: PaymentProvider,
        card_last4: str | None = None,
        card_brand: str | None = None,
        clock: IClock | None = None,
    ) -> None:
        self.audit = audit
        self.events = EventBuffer()
        self.version = 0
        self.clock: IClock = clock or WallClock()

        self.order_id = order_id
        self.user_id = user_id
        self.amount = amount
        self.method = method
        self.provider = provider
        self.status = PaymentStatus.PENDING
        self.card_last4 = card_last4
        self.card_brand = card_brand

        self.transaction_id: str | None = None
        self.gateway_response: str | None = None
        self.failure_reason: str | None = None
        self.refund_amount: Money | None = None
        self.refund_transaction_id: str | None = None

        self.initiated_at: datetime = audit.created_at
        self.processing_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.failed_at: datetime | None = None
        self.refunded_at: datetime | None = None

    @classmethod
    def initiate(
        cls,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
        amount: Money,
        method: PaymentMethod,
        provider: PaymentProvider,
        card_last4: str | None = None,
        card_brand: str | None = None,
        *,
        clock: IClock | None = None,
    ) -> Payment:
        require_id(order_id, "Order ID is required", PaymentValidationError, "order_id")
        require_id(user_id, "User ID is required", PaymentValidationError, "user_id")
        if amount is None or not amount.is_positive:
            raise PaymentValidationError("Payment amount must be positive", field="amount")
        if card_last4 is not None and not _CARD_LAST4.match(card_last4):
            raise PaymentValidationError("Card last 4 digits must be exactly 4 digits", field="card_last4")
        clean_method = require_member(method, PaymentMethod, PaymentValidationError, "method")
        clean_provider = require_member(provider, PaymentProvider, PaymentValidationError, "provider")

        clock = clock or WallClock()
        payment = cls(
            audit=AuditTrail(id=new_id(), created_at=clock.now()),
            order_id=order_id,
            user_id=user_id,
            amount=amount,
            method=clean_method,
            provider=clean_provider,
            card_last4=card_last4,
            card_brand=card_brand,
            clock=clock,
        )
        record_event(
            payment,
            PaymentInitiated,
            payment_id=str(payment.id),
            order_id=str(order_id),
            user_id=str(user_id),
            amount=amount.amount,
            currency=amount.currency,
            method=payment.method.value,
        )
        logger.debug("Payment initiated: id=%s order=%s amount=%s", payment.id, order_id, amount)
        return payment

    @property
    def id(self) -> uuid.UUID:
        return self.audit.id

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_processing(self) -> None:
        self._guard("start processing")
        self.processing_at = touch(self)
        self._set_status(PaymentStatus.PROCESSING)

    def complete(self, transaction_id: str, gateway_response: str | None = None) -> None:
        self._guard("complete")
        txn = require_text(
            transaction_id, "Transaction ID is required", PaymentValidationError, "transaction_id"
        )

        self.completed_at = touch(self)
        self.transaction_id = txn
        self.gateway_response = gateway_response
        self._set_status(PaymentStatus.COMPLETED)
        record_event(
            self,
            PaymentCompleted,
            payment_id=str(self.id),
            order_id=str(self.order_id),
            transaction_id=txn,
        )

    def fail(self, reason: str, gateway_response: str | None = None) -> None:
        self._guard("fail")
        text = require_text(reason, "Failure reason is required", PaymentValidationError, "reason")

        self.failed_at = touch(self)
        self.failure_reason = text
        self.gateway_response = gateway_response
        self._set_status(PaymentStatus.FAILED)
        record_event(
            self,
            PaymentFailed,
            payment_id=str(self.id),
            order_id=str(self.order_id),
            reason=text,
        )

    def refund(self, refund_amount: Money, refund_transaction_id: str) -> None:
        self._guard("refund")
        if refund_amount is None or not refund_amount.is_positive:
            raise PaymentValidationError("Refund amount must be positive", field="refund_amount")
        if refund_amount.currency != self.amount.currency:
            raise CurrencyMismatchError(self.amount.currency, refund_amount.currency)
        if refund_amount.greater_than(self.amount):
            raise PaymentValidationError(
                f"Refund amount cannot exceed payment amount of {self.amount}",
                field="refund_amount",
            )
        txn = require_text(
            refund_transaction_id,
            "Refund transaction ID is required",
            PaymentValidationError,
            "refund_transaction_id",
        )

        self.refunded_at = touch(self)
        self.refund_amount = refund_amount
        self.refund_transaction_id = txn
        self._set_status(PaymentStatus.REFUNDED)
        record_event(
            self,
            PaymentRefunded,
            payment_id=str(self.id),
            order_id=str(self.order_id),
            refund_amount=refund_amount.amount,
            currency=refund_amount.currency,
            refund_transaction_id=txn,
        )

    def cancel(self) -> None:
        self._guard("cancel")
        touch(self)
        self._set_status(PaymentStatus.CANCELLED)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    def has_failed(self) -> bool:
        return self.status == PaymentStatus.FAILED

    def is_refunded(self) -> bool:
        return self.status == PaymentStatus.REFUNDED

    def can_be_refunded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and self.refunded_at is None

    def refundable_amount(self) -> Money:
        if self.refund_amount is not None:
            return self.amount.subtract(self.refund_amount)
        return self.amount

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, operation: str) -> None:
        if self.status not in _OPERATION_SOURCES[operation]:
            raise InvalidPaymentStateError(self.status, operation)

    def _set_status(self, new_status: PaymentStatus) -> None:
        old_status = self.status
        self.status = new_status
        logger.debug(
            "Payment state transition: id=%s %s -> %s",
            self.id,
            old_status.value,
            new_status.value,
        )
