"""Product aggregate: catalog item with stock reservations and publishing.

Two concerns share one aggregate:

* **stock**  ``stock_quantity`` and ``reserved_quantity`` with
  ``reserved_quantity <= stock_quantity`` after every operation.  While
  published, the status follows availability (ACTIVE <-> OUT_OF_STOCK).
* **publishing**  ``DRAFT -> ACTIVE | OUT_OF_STOCK -> DISCONTINUED``.
  Discontinuing twice is a no-op.

Images and specifications are owned, immutable records that only the
product creates, replaces and removes.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from marketplace.core.clock import IClock, WallClock
from marketplace.core.enums import ProductCategory, ProductStatus
from marketplace.core.errors import (
    InsufficientStockError,
    InvalidProductStateError,
    ProductValidationError,
)
from marketplace.core.ids import new_id
from marketplace.domain.entity import (
    AuditTrail,
    EventBuffer,
    record_event,
    require_id,
    require_member,
    require_quantity,
    require_text,
    touch,
)
from marketplace.domain.events import (
    PRODUCT,
    ProductCreated,
    ProductDiscontinued,
    ProductPriceChanged,
    ProductPublished,
    ProductStockUpdated,
)
from marketplace.domain.money import Money, to_decimal

logger = logging.getLogger(__name__)

PUBLISHED_STATUSES: frozenset[ProductStatus] = frozenset(
    {ProductStatus.ACTIVE, ProductStatus.OUT_OF_STOCK}
)


# ---------------------------------------------------------------------------
# Owned entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProductImage:
    id: uuid.UUID
    url: str
    alt_text: str
    display_order: int
    is_primary: bool
    created_at: datetime
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ProductSpecification:
    id: uuid.UUID
    name: str
    value: str
    created_at: datetime
    updated_at: datetime | None = None


def _display_order(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProductValidationError(
            f"Display order must be a non-negative integer, got {value!r}",
            field="display_order",
        )
    return value


def _non_negative_price(price: Money | None) -> Money:
    if price is None or price.is_negative:
        raise ProductValidationError("Price cannot be negative", field="price")
    return price


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class Product:
    """Product aggregate root."""

    AGGREGATE_TYPE = PRODUCT

    def __init__(
        self,
        *,
        audit: AuditTrail,
        vendor_id: uuid.UUID,
        name: str,
        sku: str,
        price: Money,
        category: ProductCategory,
        description: str = "",
        stock_quantity: int = 0,
        weight: Decimal = Decimal("0"),
        brand: str | None = None,
        manufacturer: str | None = None,
        clock: IClock | None = None,
    ) -> None:
        self.audit = audit
        self.events = EventBuffer()
        self.version = 0
        self.clock: IClock = clock or WallClock()

        self.vendor_id = vendor_id
        self.name = name
        self.description = description
        self.sku = sku
        self.price = price
        self.category = category
        self.status = ProductStatus.DRAFT
        self.stock_quantity = stock_quantity
        self.reserved_quantity = 0
        self.weight = weight
        self.brand = brand
        self.manufacturer = manufacturer

        self._images: list[ProductImage] = []
        self._specifications: list[ProductSpecification] = []

    @classmethod
    def create(
        cls,
        vendor_id: uuid.UUID,
        name: str,
        sku: str,
        price: Money,
        category: ProductCategory,
        description: str = "",
        initial_stock: int = 0,
        weight: Decimal | int | str = Decimal("0"),
        brand: str | None = None,
        manufacturer: str | None = None,
        *,
        clock: IClock | None = None,
    ) -> Product:
        """Register a new product in ``DRAFT``.

        Parameters
        ----------
        vendor_id:
            Owning vendor.  May not be empty.
        sku:
            Stock-keeping unit; stored upper-case.
        price:
            Zero is accepted here, but a product cannot be published
            until its price is positive.
        initial_stock:
            Non-negative starting stock.
        """
        require_id(vendor_id, "Vendor ID is required", ProductValidationError, "vendor_id")
        clean_name = require_text(name, "Product name is required", ProductValidationError, "name")
        clean_sku = require_text(sku, "SKU is required", ProductValidationError, "sku").upper()
        _non_negative_price(price)
        if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
            raise ProductValidationError("Stock quantity cannot be negative", field="initial_stock")
        clean_weight = cls._check_weight(weight)
        clean_category = require_member(category, ProductCategory, ProductValidationError, "category")

        clock = clock or WallClock()
        product = cls(
            audit=AuditTrail(id=new_id(), created_at=clock.now()),
            vendor_id=vendor_id,
            name=clean_name,
            description=description or "",
            sku=clean_sku,
            price=price,
            category=clean_category,
            stock_quantity=initial_stock,
            weight=clean_weight,
            brand=brand,
            manufacturer=manufacturer,
            clock=clock,
        )
        record_event(
            product,
            ProductCreated,
            product_id=str(product.id),
            vendor_id=str(vendor_id),
            name=clean_name,
            price=price.amount,
            currency=price.currency,
        )
        logger.debug("Product created: id=%s sku=%s", product.id, clean_sku)
        return product

    @property
    def id(self) -> uuid.UUID:
        return self.audit.id

    @property
    def available_quantity(self) -> int:
        return max(0, self.stock_quantity - self.reserved_quantity)

    @property
    def images(self) -> tuple[ProductImage, ...]:
        return tuple(self._images)

    @property
    def specifications(self) -> tuple[ProductSpecification, ...]:
        return tuple(self._specifications)

    # ------------------------------------------------------------------
    # Details and price
    # ------------------------------------------------------------------

    def update_details(
        self,
        name: str,
        description: str,
        category: ProductCategory,
        weight: Decimal | int | str = Decimal("0"),
        brand: str | None = None,
        manufacturer: str | None = None,
    ) -> None:
        clean_name = require_text(name, "Product name is required", ProductValidationError, "name")
        clean_weight = self._check_weight(weight)
        clean_category = require_member(category, ProductCategory, ProductValidationError, "category")

        touch(self)
        self.name = clean_name
        self.description = description or ""
        self.category = clean_category
        self.weight = clean_weight
        self.brand = brand
        self.manufacturer = manufacturer

    def update_price(self, new_price: Money) -> None:
        _non_negative_price(new_price)

        old_price = self.price
        touch(self)
        self.price = new_price
        record_event(
            self,
            ProductPriceChanged,
            product_id=str(self.id),
            old_price=old_price.amount,
            new_price=new_price.amount,
            currency=new_price.currency,
        )

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def add_stock(self, quantity: int) -> None:
        require_quantity(quantity, ProductValidationError)

        old_stock = self.stock_quantity
        touch(self)
        self.stock_quantity += quantity
        self._follow_availability()
        self._stock_updated(old_stock)

    def remove_stock(self, quantity: int) -> None:
        require_quantity(quantity, ProductValidationError)
        if quantity > self.available_quantity:
            raise InsufficientStockError("remove", quantity, self.available_quantity)

        old_stock = self.stock_quantity
        touch(self)
        self.stock_quantity -= quantity
        self._follow_availability()
        self._stock_updated(old_stock)

    def reserve_stock(self, quantity: int) -> None:
        """Set *quantity* aside for a pending order.  Stock is unchanged."""
        require_quantity(quantity, ProductValidationError)
        if quantity > self.available_quantity:
            raise InsufficientStockError("reserve", quantity, self.available_quantity)

        touch(self)
        self.reserved_quantity += quantity
        self._follow_availability()

    def release_reserved_stock(self, quantity: int) -> None:
        require_quantity(quantity, ProductValidationError)
        self._require_reserved("release", quantity)

        touch(self)
        self.reserved_quantity -= quantity
        self._follow_availability()

    def confirm_reservation(self, quantity: int) -> None:
        """Fulfil *quantity* reserved units: both reserved and stock drop."""
        require_quantity(quantity, ProductValidationError)
        self._require_reserved("confirm", quantity)

        old_stock = self.stock_quantity
        touch(self)
        self.reserved_quantity -= quantity
        self.stock_quantity -= quantity
        self._stock_updated(old_stock)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self) -> None:
        if self.status != ProductStatus.DRAFT:
            raise InvalidProductStateError(self.status, "publish")
        if self.primary_image() is None:
            raise ProductValidationError(
                "Product must have a primary image before publishing", field="images"
            )
        if not self.price.is_positive:
            raise ProductValidationError(
                "Product must have a valid price before publishing", field="price"
            )

        touch(self)
        self._set_status(
            ProductStatus.ACTIVE if self.available_quantity > 0 else ProductStatus.OUT_OF_STOCK
        )
        record_event(
            self,
            ProductPublished,
            product_id=str(self.id),
            status=self.status.value,
        )

    def discontinue(self) -> None:
        if self.status == ProductStatus.DISCONTINUED:
            return

        touch(self)
        self._set_status(ProductStatus.DISCONTINUED)
        record_event(self, ProductDiscontinued, product_id=str(self.id))

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def add_image(
        self,
        url: str,
        alt_text: str = "",
        display_order: int = 0,
        is_primary: bool = False,
    ) -> ProductImage:
        clean_url = require_text(url, "Image URL is required", ProductValidationError, "url")
        order = _display_order(display_order)

        now = touch(self)
        image = ProductImage(
            id=new_id(),
            url=clean_url,
            alt_text=alt_text or "",
            display_order=order,
            is_primary=bool(is_primary),
            created_at=now,
        )
        images = self._demote_primary(now) if image.is_primary else list(self._images)
        images.append(image)
        self._images = images
        return image

    def set_primary_image(self, image_id: uuid.UUID) -> None:
        index = self._image_index(image_id)

        now = touch(self)
        images = self._demote_primary(now)
        images[index] = replace(images[index], is_primary=True, updated_at=now)
        self._images = images

    def reorder_image(self, image_id: uuid.UUID, display_order: int) -> None:
        index = self._image_index(image_id)
        order = _display_order(display_order)

        now = touch(self)
        self._images[index] = replace(self._images[index], display_order=order, updated_at=now)

    def remove_image(self, image_id: uuid.UUID) -> None:
        index = self._image_index(image_id)

        touch(self)
        del self._images[index]

    # ------------------------------------------------------------------
    # Specifications
    # ------------------------------------------------------------------

    def add_specification(self, name: str, value: str) -> ProductSpecification:
        clean_name = require_text(
            name, "Specification name is required", ProductValidationError, "name"
        )
        clean_value = require_text(
            value, "Specification value is required", ProductValidationError, "value"
        )

        now = touch(self)
        spec = ProductSpecification(id=new_id(), name=clean_name, value=clean_value, created_at=now)
        self._specifications.append(spec)
        return spec

    def update_specification(self, specification_id: uuid.UUID, value: str) -> None:
        index = self._specification_index(specification_id)
        clean_value = require_text(
            value, "Specification value is required", ProductValidationError, "value"
        )

        now = touch(self)
        self._specifications[index] = replace(
            self._specifications[index], value=clean_value, updated_at=now
        )

    def remove_specification(self, specification_id: uuid.UUID) -> None:
        index = self._specification_index(specification_id)

        touch(self)
        del self._specifications[index]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_published(self) -> bool:
        return self.status in PUBLISHED_STATUSES

    def is_available(self) -> bool:
        return self.status == ProductStatus.ACTIVE and self.available_quantity > 0

    def is_out_of_stock(self) -> bool:
        return self.available_quantity == 0

    def has_sufficient_stock(self, quantity: int) -> bool:
        return self.available_quantity >= quantity

    def primary_image(self) -> ProductImage | None:
        return next((image for image in self._images if image.is_primary), None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_weight(weight: Decimal | int | str) -> Decimal:
        value = to_decimal(weight, "weight")
        if value < 0:
            raise ProductValidationError("Weight cannot be negative", field="weight")
        return value

    def _require_reserved(self, operation: str, quantity: int) -> None:
        if quantity > self.reserved_quantity:
            raise ProductValidationError(
                f"Cannot {operation} {quantity} items. Only {self.reserved_quantity} reserved",
                field="quantity",
            )

    def _follow_availability(self) -> None:
        """Flip between ACTIVE and OUT_OF_STOCK.  Other statuses are left alone."""
        if self.status == ProductStatus.ACTIVE and self.available_quantity == 0:
            self._set_status(ProductStatus.OUT_OF_STOCK)
        elif self.status == ProductStatus.OUT_OF_STOCK and self.available_quantity > 0:
            self._set_status(ProductStatus.ACTIVE)

    def _stock_updated(self, old_stock: int) -> None:
        record_event(
            self,
            ProductStockUpdated,
            product_id=str(self.id),
            old_stock=old_stock,
            new_stock=self.stock_quantity,
        )

    def _demote_primary(self, now: datetime) -> list[ProductImage]:
        return [
            replace(image, is_primary=False, updated_at=now) if image.is_primary else image
            for image in self._images
        ]

    def _image_index(self, image_id: uuid.UUID) -> int:
        for index, image in enumerate(self._images):
            if image.id == image_id:
                return index
        raise ProductValidationError(f"Image with ID {image_id} not found", field="image_id")

    def _specification_index(self, specification_id: uuid.UUID) -> int:
        for index, spec in enumerate(self._specifications):
            if spec.id == specification_id:
                return index
        raise ProductValidationError(
            f"Specification with ID {specification_id} not found", field="specification_id"
        )

    def _set_status(self, new_status: ProductStatus) -> None:
        old_status = self.status
        self.status = new_status
        logger.debug(
            "Product state transition: id=%s %s -> %s",
            self.id,
            old_status.value,
            new_status.value,
        )
