"""Custom exception hierarchy for the marketplace core."""

from __future__ import annotations

from typing import Any


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""


# --- Configuration ---
class ConfigError(MarketplaceError):
    """Invalid or missing configuration."""


# --- Domain ---
class DomainError(MarketplaceError):
    """A business rule rejected the requested operation."""


class ValidationError(DomainError):
    """Input failed a structural or business rule.

    Independent of aggregate state: retrying with the same input fails
    the same way.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class CurrencyMismatchError(ValidationError):
    """Two money values in different currencies were combined."""

    def __init__(self, left: str, right: str) -> None:
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot operate on different currencies: {left} and {right}",
            field="currency",
        )


class InsufficientStockError(ValidationError):
    """Requested quantity exceeds what is available."""

    def __init__(self, operation: str, requested: int, available: int) -> None:
        self.operation = operation
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot {operation} {requested} items. Only {available} available",
            field="quantity",
        )


class OrderValidationError(ValidationError):
    """Order input rejected."""


class OrderItemValidationError(OrderValidationError):
    """Order line input rejected."""


class PaymentValidationError(ValidationError):
    """Payment input rejected."""


class ProductValidationError(ValidationError):
    """Product input rejected."""


class VendorValidationError(ValidationError):
    """Vendor input rejected."""


class StateConflictError(DomainError):
    """The operation is illegal from the aggregate's current status.

    Reloading fresher state may make a retry succeed; retrying against
    the same snapshot never will.
    """

    aggregate: str = "aggregate"

    def __init__(self, current_status: Any, operation: str, detail: str = "") -> None:
        self.current_status = current_status
        self.operation = operation
        status = getattr(current_status, "value", current_status)
        message = f"Cannot {operation} {self.aggregate} in {status} state"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class InvalidOrderStateError(StateConflictError):
    aggregate = "order"


class InvalidPaymentStateError(StateConflictError):
    aggregate = "payment"


class InvalidProductStateError(StateConflictError):
    aggregate = "product"


class InvalidVendorStateError(StateConflictError):
    aggregate = "vendor"


# --- Persistence ---
class PersistenceError(MarketplaceError):
    """Repository or event store failure."""


class AggregateNotFoundError(PersistenceError):
    """No aggregate stored under the requested id."""

    def __init__(self, aggregate: str, aggregate_id: Any) -> None:
        self.aggregate = aggregate
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate} {aggregate_id} not found")


class ConcurrencyConflictError(PersistenceError):
    """Optimistic version check failed on save."""

    def __init__(
        self, aggregate: str, aggregate_id: Any, expected: int, actual: int
    ) -> None:
        self.aggregate = aggregate
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{aggregate} {aggregate_id} was modified concurrently: "
            f"snapshot version {expected}, stored version {actual}"
        )


# --- Messaging ---
class WriteOwnershipError(MarketplaceError):
    """An event was published by an aggregate type that does not own it."""

