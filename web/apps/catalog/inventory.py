"""Inventory ledger: atomic stock movements on ``Product.quantity``.

All movements are expressed as single ``UPDATE`` statements using ``F()``
expressions so concurrent requests never lose updates through an
application-level read-modify-write. Reservation is conditional
(``WHERE quantity >= requested``), which keeps stock from going negative
even when two checkouts race for the last units.

Products that are not stock-tracked (NULL quantity) or that point to an
external storefront are ignored by every movement.
"""

import logging
from enum import Enum

from django.db.models import F, Q
from django.db.models.functions import Greatest

from .errors import ProductNotFound
from .models import Product

logger = logging.getLogger(__name__)


class StockOperation(str, Enum):
    """Operations accepted by the stand-alone stock update."""

    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


def _tracked(product_id):
    """Queryset restricted to the stock-tracked, non-deleted product row."""
    return Product.objects.filter(
        Q(external_url__isnull=True) | Q(external_url=""),
        id=product_id,
        quantity__isnull=False,
        deleted_at__isnull=True,
    )


class InventoryLedger:
    """Reserve and release stock for order items."""

    def reserve(self, product_id, quantity: int) -> bool:
        """Atomically decrement stock when enough units are available.

        Args:
            product_id: Product to reserve from.
            quantity: Positive number of units.

        Returns:
            True when the units were reserved or the product is not
            stock-tracked; False when the tracked stock was lower than
            ``quantity`` (nothing is changed in that case).
        """
        updated = _tracked(product_id).filter(quantity__gte=quantity).update(
            quantity=F("quantity") - quantity
        )
        if updated:
            logger.info("stock reserved", extra={"product_id": str(product_id), "quantity": quantity})
            return True
        if not _tracked(product_id).exists():
            return True
        logger.warning(
            "stock reservation refused", extra={"product_id": str(product_id), "quantity": quantity}
        )
        return False

    def release(self, product_id, quantity: int) -> None:
        """Atomically give ``quantity`` units back to the product."""
        updated = _tracked(product_id).update(quantity=F("quantity") + quantity)
        if updated:
            logger.info("stock released", extra={"product_id": str(product_id), "quantity": quantity})

    def update_stock(self, product_id, quantity: int, operation: StockOperation = StockOperation.SET):
        """Stand-alone stock adjustment used outside the ordering flow.

        ``subtract`` clamps the result at zero instead of failing.

        Returns:
            The resulting quantity, or None when the product is not
            stock-tracked.

        Raises:
            ProductNotFound: If the product does not exist or is deleted.
        """
        operation = StockOperation(operation)
        product = Product.objects.filter(id=product_id, deleted_at__isnull=True).first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")
        if product.external_url:
            return None

        qs = Product.objects.filter(id=product_id)
        if operation is StockOperation.SET:
            qs.update(quantity=max(0, quantity))
        elif product.quantity is None:
            # untracked stock only becomes tracked through an explicit set
            return None
        elif operation is StockOperation.ADD:
            qs.update(quantity=F("quantity") + quantity)
        else:
            qs.update(quantity=Greatest(F("quantity") - quantity, 0))

        product.refresh_from_db(fields=["quantity"])
        logger.info(
            "stock updated",
            extra={"product_id": str(product_id), "operation": operation.value, "quantity": product.quantity},
        )
        return product.quantity
