"""Repository layer for reading catalog products.

Products are owned by the catalog; the orders flow only needs a read-only
snapshot of the fields that decide whether an item can be bought (price,
stock, external URL and status). Soft-deleted products are never returned.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from django.core.exceptions import ValidationError

from .models import Product


@dataclass(frozen=True)
class ProductSnapshot:
    """Immutable view of a product at lookup time.

    Attributes:
        id: Product identifier (string form of the UUID).
        name: Display name, used as the gateway line item title.
        sku: Optional stock-keeping unit, used as the line item code.
        price: Unit price, or None when the product has no price.
        quantity: Available stock, or None when stock is not tracked.
        external_url: Third-party storefront URL, if any.
        status: Catalog status (``active``/``inactive``).
    """

    id: str
    name: str
    sku: Optional[str]
    price: Optional[Decimal]
    quantity: Optional[int]
    external_url: Optional[str]
    status: str

    @property
    def is_stock_tracked(self) -> bool:
        return self.quantity is not None and not self.external_url

    @property
    def is_active(self) -> bool:
        return self.status == Product.Status.ACTIVE


def _to_snapshot(obj: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=str(obj.id),
        name=obj.name,
        sku=obj.sku,
        price=obj.price,
        quantity=obj.quantity,
        external_url=obj.external_url or None,
        status=obj.status,
    )


class ProductRepository:
    """Read-only product lookups backed by the Django ORM."""

    def find_by_id(self, product_id) -> Optional[ProductSnapshot]:
        """Return the product snapshot, or None when missing or soft-deleted.

        Malformed identifiers are treated as missing.
        """
        try:
            obj = Product.objects.filter(id=product_id, deleted_at__isnull=True).first()
        except (ValueError, TypeError, ValidationError):
            return None
        return _to_snapshot(obj) if obj else None

    def find_many(self, product_ids: Iterable) -> dict[str, ProductSnapshot]:
        """Return a mapping of requested id to snapshot for the existing ids."""
        found: dict[str, ProductSnapshot] = {}
        for pid in dict.fromkeys(str(p) for p in product_ids):
            snap = self.find_by_id(pid)
            if snap is not None:
                found[pid] = snap
        return found
