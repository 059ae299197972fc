"""Audit trail, event buffer and the shared entity functions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from marketplace.core.enums import ProductCategory
from marketplace.core.errors import OrderValidationError, ValidationError
from marketplace.core.ids import NIL_ID
from marketplace.domain.entity import (
    AuditTrail,
    EventBuffer,
    drain_events,
    require_id,
    require_member,
    require_quantity,
    require_text,
    soft_delete,
)
from marketplace.domain.events import DomainEvent

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 6, 2, tzinfo=timezone.utc)


class TestAuditTrail:
    def test_nil_id_rejected(self):
        with pytest.raises(ValidationError):
            AuditTrail(id=NIL_ID, created_at=T0)

    def test_touch(self):
        audit = AuditTrail(id=uuid.uuid4(), created_at=T0)
        assert audit.updated_at is None
        audit.touch(T1)
        assert audit.updated_at == T1

    def test_mark_deleted_is_idempotent(self):
        audit = AuditTrail(id=uuid.uuid4(), created_at=T0)
        audit.mark_deleted(T0)
        audit.mark_deleted(T1)
        assert audit.is_deleted
        assert audit.deleted_at == T0


class TestEventBuffer:
    def test_drain_returns_in_order_and_empties(self):
        buf = EventBuffer()
        first, second = DomainEvent(), DomainEvent()
        buf.record(first)
        buf.record(second)
        assert len(buf) == 2

        assert buf.drain() == [first, second]
        assert len(buf) == 0
        assert not buf
        assert buf.drain() == []


class TestSharedFunctions:
    def test_drain_events(self, make_vendor):
        vendor = make_vendor()
        vendor.approve()
        names = [type(e).__name__ for e in drain_events(vendor)]
        assert names == ["VendorRegistered", "VendorApproved"]
        assert drain_events(vendor) == []

    def test_soft_delete_uses_clock(self, sim_clock, make_product):
        product = make_product()
        sim_clock.advance_ms(1_000)
        soft_delete(product)
        assert product.audit.is_deleted
        assert product.audit.deleted_at == sim_clock.now()


class TestGuards:
    def test_require_text_strips(self):
        assert require_text("  x ", "msg", OrderValidationError, "f") == "x"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_require_text_blank(self, value):
        with pytest.raises(OrderValidationError, match="msg") as info:
            require_text(value, "msg", OrderValidationError, "f")
        assert info.value.field == "f"

    @pytest.mark.parametrize("value", [None, NIL_ID])
    def test_require_id(self, value):
        with pytest.raises(OrderValidationError):
            require_id(value, "msg", OrderValidationError, "f")

    @pytest.mark.parametrize("value", [0, -1, True, 1.5])
    def test_require_quantity(self, value):
        with pytest.raises(OrderValidationError):
            require_quantity(value, OrderValidationError)

    def test_require_quantity_ok(self):
        assert require_quantity(3, OrderValidationError) == 3

    def test_require_member_coerces(self):
        assert require_member("home", ProductCategory, OrderValidationError, "f") is ProductCategory.HOME

    def test_require_member_rejects(self):
        with pytest.raises(OrderValidationError, match="expected one of") as info:
            require_member("nope", ProductCategory, OrderValidationError, "f")
        assert info.value.field == "f"
        assert isinstance(info.value.__cause__, ValueError)
