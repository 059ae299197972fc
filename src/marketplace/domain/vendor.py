"""Vendor aggregate: seller onboarding and governance.

::

    PENDING -> ACTIVE <-> SUSPENDED
    PENDING -> DEACTIVATED          (rejection)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from marketplace.core.clock import IClock, WallClock
from marketplace.core.enums import VendorStatus
from marketplace.core.errors import InvalidVendorStateError, VendorValidationError
from marketplace.core.ids import new_id
from marketplace.domain.entity import (
    AuditTrail,
    EventBuffer,
    record_event,
    require_id,
    require_text,
    touch,
)
from marketplace.domain.events import (
    VENDOR,
    VendorApproved,
    VendorReactivated,
    VendorRegistered,
    VendorRejected,
    VendorSuspended,
)
from marketplace.domain.money import DEFAULT_CURRENCY, Address, Money, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("0.15")

_EDITABLE = frozenset({VendorStatus.PENDING, VendorStatus.ACTIVE, VendorStatus.SUSPENDED})

_OPERATION_SOURCES: dict[str, frozenset[VendorStatus]] = {
    "approve": frozenset({VendorStatus.PENDING}),
    "reject": frozenset({VendorStatus.PENDING}),
    "suspend": frozenset({VendorStatus.ACTIVE}),
    "reactivate": frozenset({VendorStatus.SUSPENDED}),
    "update business info of": _EDITABLE,
    "update banking info of": _EDITABLE,
    "update logo of": _EDITABLE,
}


def _commission_rate(value: Decimal | int | str) -> Decimal:
    rate = to_decimal(value, "commission_rate")
    if rate < 0 or rate > 1:
        raise VendorValidationError(
            "Commission rate must be between 0 and 1", field="commission_rate"
        )
    return rate


def _email(value: str) -> str:
    return require_text(value, "Email is required", VendorValidationError, "email").lower()


class Vendor:
    """Vendor aggregate root."""

    AGGREGATE_TYPE = VENDOR

    def __init__(
        self,
        *,
        audit: AuditTrail,
        user_id: uuid.UUID,
        business_name: str,
        email: str,
        phone_number: str,
        contact_person_name: str,
        business_address: Address,
        commission_rate: Decimal = DEFAULT_COMMISSION_RATE,
        tax_id: str | None = None,
        bank_account: str | None = None,
        currency: str = DEFAULT_CURRENCY,
        clock: IClock | None = None,
    ) -> None:
        self.audit = audit
        self.events = EventBuffer()
        self.version = 0
        self.clock: IClock = clock or WallClock()

        self.user_id = user_id
        self.business_name = business_name
        self.email = email
        self.phone_number = phone_number
        self.contact_person_name = contact_person_name
        self.business_address = business_address
        self.status = VendorStatus.PENDING
        self.commission_rate = commission_rate
        self.total_revenue = Money.zero(currency)
        self.tax_id = tax_id
        self.bank_account = bank_account
        self.logo_url: str | None = None

        self.approved_at: datetime | None = None
        self.rejected_at: datetime | None = None
        self.rejection_reason: str | None = None
        self.suspended_at: datetime | None = None
        self.suspension_reason: str | None = None

    @classmethod
    def register(
        cls,
        user_id: uuid.UUID,
        business_name: str,
        email: str,
        phone_number: str,
        contact_person_name: str,
        business_address: Address,
        tax_id: str | None = None,
        bank_account: str | None = None,
        commission_rate: Decimal | int | str = DEFAULT_COMMISSION_RATE,
        currency: str = DEFAULT_CURRENCY,
        *,
        clock: IClock | None = None,
    ) -> Vendor:
        """Register a seller awaiting approval.

        ``currency`` fixes the currency revenue is accumulated in.
        """
        require_id(user_id, "User ID is required", VendorValidationError, "user_id")
        name = require_text(
            business_name, "Business name is required", VendorValidationError, "business_name"
        )
        clean_email = _email(email)
        if business_address is None:
            raise VendorValidationError("Business address is required", field="business_address")
        rate = _commission_rate(commission_rate)

        clock = clock or WallClock()
        vendor = cls(
            audit=AuditTrail(id=new_id(), created_at=clock.now()),
            user_id=user_id,
            business_name=name,
            email=clean_email,
            phone_number=phone_number or "",
            contact_person_name=contact_person_name or "",
            business_address=business_address,
            commission_rate=rate,
            tax_id=tax_id,
            bank_account=bank_account,
            currency=currency,
            clock=clock,
        )
        record_event(
            vendor,
            VendorRegistered,
            vendor_id=str(vendor.id),
            user_id=str(user_id),
            business_name=name,
            email=clean_email,
        )
        logger.debug("Vendor registered: id=%s name=%s", vendor.id, name)
        return vendor

    @property
    def id(self) -> uuid.UUID:
        return self.audit.id

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------

    def approve(self) -> None:
        self._guard("approve")

        self.approved_at = touch(self)
        self.rejected_at = None
        self.rejection_reason = None
        self._set_status(VendorStatus.ACTIVE)
        record_event(self, VendorApproved, vendor_id=str(self.id))

    def reject(self, reason: str) -> None:
        self._guard("reject")
        text = require_text(reason, "Rejection reason is required", VendorValidationError, "reason")

        self.rejected_at = touch(self)
        self.rejection_reason = text
        self._set_status(VendorStatus.DEACTIVATED)
        record_event(self, VendorRejected, vendor_id=str(self.id), reason=text)

    def suspend(self, reason: str) -> None:
        self._guard("suspend")
        text = require_text(reason, "Suspension reason is required", VendorValidationError, "reason")

        self.suspended_at = touch(self)
        self.suspension_reason = text
        self._set_status(VendorStatus.SUSPENDED)
        record_event(self, VendorSuspended, vendor_id=str(self.id), reason=text)

    def reactivate(self) -> None:
        self._guard("reactivate")

        touch(self)
        self.suspended_at = None
        self.suspension_reason = None
        self._set_status(VendorStatus.ACTIVE)
        record_event(self, VendorReactivated, vendor_id=str(self.id))

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_business_info(
        self,
        business_name: str,
        email: str,
        phone_number: str,
        contact_person_name: str,
        business_address: Address,
    ) -> None:
        self._guard("update business info of")
        name = require_text(
            business_name, "Business name is required", VendorValidationError, "business_name"
        )
        clean_email = _email(email)
        if business_address is None:
            raise VendorValidationError("Business address is required", field="business_address")

        touch(self)
        self.business_name = name
        self.email = clean_email
        self.phone_number = phone_number or ""
        self.contact_person_name = contact_person_name or ""
        self.business_address = business_address

    def update_banking_info(self, tax_id: str | None, bank_account: str | None) -> None:
        self._guard("update banking info of")

        touch(self)
        self.tax_id = tax_id
        self.bank_account = bank_account

    def update_logo(self, logo_url: str) -> None:
        self._guard("update logo of")
        url = require_text(logo_url, "Logo URL cannot be empty", VendorValidationError, "logo_url")

        touch(self)
        self.logo_url = url

    # ------------------------------------------------------------------
    # Revenue
    # ------------------------------------------------------------------

    def add_revenue(self, amount: Money) -> None:
        if amount is None or not amount.is_positive:
            raise VendorValidationError("Revenue amount must be positive", field="amount")
        new_total = self.total_revenue.add(amount)

        touch(self)
        self.total_revenue = new_total

    def calculate_commission(self, sale_amount: Money) -> Money:
        return sale_amount.multiply(self.commission_rate)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_approved(self) -> bool:
        return self.status == VendorStatus.ACTIVE

    def is_pending(self) -> bool:
        return self.status == VendorStatus.PENDING

    def is_suspended(self) -> bool:
        return self.status == VendorStatus.SUSPENDED

    def can_sell_products(self) -> bool:
        return self.status == VendorStatus.ACTIVE

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, operation: str) -> None:
        if self.status not in _OPERATION_SOURCES[operation]:
            raise InvalidVendorStateError(self.status, operation)

    def _set_status(self, new_status: VendorStatus) -> None:
        old_status = self.status
        self.status = new_status
        logger.debug(
            "Vendor state transition: id=%s %s -> %s",
            self.id,
            old_status.value,
            new_status.value,
        )
