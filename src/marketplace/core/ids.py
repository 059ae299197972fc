"""Canonical ID, timestamp and order-number factories.

All modules import from here instead of defining local uuid4()/now() copies.

ID Categories
-------------
1. Aggregate and owned-entity IDs: ``uuid.UUID`` v4 values.
2. Event IDs: UUID v4 strings (idempotency keys in the event store).
3. Order numbers: human-facing ``PREFIX-YYYYMMDD-#####`` strings produced by
   an injected generator, so tests can pin them.

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``, never naive.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Protocol

#: The empty identifier.  Never a valid aggregate or reference id.
NIL_ID = uuid.UUID(int=0)


def new_id() -> uuid.UUID:
    """Generate a new UUID v4.  Use for all aggregate and entity IDs."""
    return uuid.uuid4()


def new_event_id() -> str:
    """Generate a new UUID v4 string for a domain event."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def is_nil(value: uuid.UUID | None) -> bool:
    """True when *value* is missing or the empty UUID."""
    return value is None or value == NIL_ID


# ---------------------------------------------------------------------------
# Order numbers
# ---------------------------------------------------------------------------

class IOrderNumberGenerator(Protocol):
    """Produces human-facing order numbers."""

    def next_number(self, now: datetime) -> str:
        """Return a new order number for an order placed at *now*."""
        ...


def format_order_number(prefix: str, now: datetime, sequence: int) -> str:
    """Render ``PREFIX-YYYYMMDD-#####``."""
    return f"{prefix}-{now:%Y%m%d}-{sequence:05d}"


class RandomOrderNumberGenerator:
    """Five random digits (10000-99999) per order.

    Parameters
    ----------
    prefix:
        Leading token, ``"ORD"`` by default.
    rng:
        Source of randomness.  Pass a seeded ``random.Random`` for
        reproducible numbers.
    """

    def __init__(self, prefix: str = "ORD", rng: random.Random | None = None) -> None:
        self._prefix = prefix
        self._rng = rng or random.Random()

    def next_number(self, now: datetime) -> str:
        return format_order_number(self._prefix, now, self._rng.randint(10000, 99999))


class SequentialOrderNumberGenerator:
    """Monotonic counter, zero-padded to five digits.  Deterministic."""

    def __init__(self, prefix: str = "ORD", start: int = 1) -> None:
        if start < 0:
            raise ValueError(f"Sequence start must be non-negative, got {start}")
        self._prefix = prefix
        self._next = start

    def next_number(self, now: datetime) -> str:
        number = format_order_number(self._prefix, now, self._next % 100_000)
        self._next += 1
        return number
