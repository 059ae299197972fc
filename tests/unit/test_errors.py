"""Exception hierarchy: the two recoverable kinds and their named variants."""

import pytest

from marketplace.core.enums import OrderStatus, ProductStatus
from marketplace.core.errors import (
    AggregateNotFoundError,
    ConcurrencyConflictError,
    CurrencyMismatchError,
    DomainError,
    InsufficientStockError,
    InvalidOrderStateError,
    InvalidProductStateError,
    MarketplaceError,
    OrderItemValidationError,
    OrderValidationError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)


@pytest.mark.parametrize(
    "cls",
    [CurrencyMismatchError, InsufficientStockError, OrderItemValidationError],
)
def test_validation_variants(cls):
    assert issubclass(cls, ValidationError)
    assert issubclass(cls, DomainError)
    assert not issubclass(cls, StateConflictError)


def test_item_error_is_order_error():
    assert issubclass(OrderItemValidationError, OrderValidationError)


def test_state_conflict_names_status_and_operation():
    err = InvalidOrderStateError(OrderStatus.SHIPPED, "cancel")
    assert err.current_status is OrderStatus.SHIPPED
    assert err.operation == "cancel"
    assert str(err) == "Cannot cancel order in shipped state"


def test_state_conflict_detail():
    err = InvalidProductStateError(ProductStatus.ACTIVE, "publish", "already live")
    assert str(err) == "Cannot publish product in active state: already live"


def test_insufficient_stock_message():
    err = InsufficientStockError("reserve", 3, 1)
    assert str(err) == "Cannot reserve 3 items. Only 1 available"
    assert (err.requested, err.available) == (3, 1)


def test_persistence_errors():
    assert issubclass(AggregateNotFoundError, PersistenceError)
    err = ConcurrencyConflictError("order", "abc", 1, 2)
    assert err.expected == 1 and err.actual == 2
    assert isinstance(err, MarketplaceError)
    assert not isinstance(err, DomainError)
