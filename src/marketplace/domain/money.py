"""Value objects: money and postal addresses.

Immutable (``frozen=True``) and compared by value.  Every operation on
``Money`` returns a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from marketplace.core.errors import CurrencyMismatchError, ValidationError

DEFAULT_CURRENCY = "USD"


def to_decimal(value: Decimal | int | float | str, field: str = "amount") -> Decimal:
    """Coerce *value* to ``Decimal`` without binary-float artefacts."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got bool", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}", field=field)
    return result


@dataclass(frozen=True)
class Money:
    """Amount in a single currency.

    ``currency`` is normalised to a stripped upper-case code; a blank code
    is rejected.  ``add``/``subtract`` and comparisons require matching
    currencies, ``multiply``/``divide`` take a plain scalar.
    """

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if not isinstance(self.currency, str) or not self.currency.strip():
            raise ValidationError("Currency cannot be empty", field="currency")
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", self.currency.strip().upper())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> Money:
        return cls(Decimal("0"), currency)

    # -- Arithmetic --------------------------------------------------------

    def add(self, other: Money) -> Money:
        self._require_same_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: Money) -> Money:
        self._require_same_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def multiply(self, multiplier: Decimal | int | str) -> Money:
        return Money(self.amount * to_decimal(multiplier, "multiplier"), self.currency)

    def divide(self, divisor: Decimal | int | str) -> Money:
        d = to_decimal(divisor, "divisor")
        if d == 0:
            raise ValidationError("Cannot divide money by zero", field="divisor")
        return Money(self.amount / d, self.currency)

    # -- Comparison --------------------------------------------------------

    def greater_than(self, other: Money) -> bool:
        self._require_same_currency(other)
        return self.amount > other.amount

    def less_than(self, other: Money) -> bool:
        self._require_same_currency(other)
        return self.amount < other.amount

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def _require_same_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency}"


@dataclass(frozen=True)
class Address:
    """Postal address."""

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @property
    def is_complete(self) -> bool:
        """Street, city and country are the minimum for delivery."""
        return all(p.strip() for p in (self.street, self.city, self.country))

    def __str__(self) -> str:
        parts = [self.street, self.city, self.state, self.zip_code, self.country]
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True)
class ShippingAddress(Address):
    """Delivery address with recipient details."""

    recipient_name: str = ""
    phone_number: str = ""
    delivery_instructions: str | None = None

    @property
    def is_complete(self) -> bool:
        return super().is_complete and bool(self.recipient_name.strip())
