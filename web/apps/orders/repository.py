"""Repository layer for persisting orders.

This module keeps the order service away from ORM query details. It hands
back ``Order`` model instances (with their items prefetched) and exposes the
two conditional updates that make stock reservation bookkeeping exact:
``claim_reservation`` and ``release_reservation`` flip the ``stock_reserved``
flag with a single ``UPDATE ... WHERE`` so only one caller ever wins.
"""

from typing import Optional

from django.core.exceptions import ValidationError
from django.db.models import Q
from django.utils import timezone

from .domain import CreateOrderCommand, OrderFilters
from .models import Order, OrderItem
from .pricing import OrderTotals


class OrderRepository:
    """Repository that persists orders and their items using Django ORM."""

    def _active(self):
        return Order.objects.filter(deleted_at__isnull=True).prefetch_related("items__product")

    def create(self, command: CreateOrderCommand, totals: OrderTotals) -> Order:
        """Persist a new pending order and its priced items.

        The caller is expected to run this inside the same transaction as the
        stock reservations, so the flag is written as already reserved.

        Args:
            command: The validated create command.
            totals: Output of the pricing calculator for the command's items.

        Returns:
            Order: The saved order.
        """
        order = Order.objects.create(
            user_id=command.user_id,
            status=Order.Status.PENDING,
            payment_status=Order.PaymentStatus.PENDING,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_cost,
            tax=totals.tax,
            total=totals.total,
            payment_method=command.payment_method,
            shipping_address=command.shipping_address,
            billing_address=command.billing_address,
            notes=command.notes,
            tracking_number=command.tracking_number,
            stock_reserved=True,
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=item.product.id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount=item.discount,
                    total=item.total,
                )
                for item in totals.items
            ]
        )
        return self.get(order.id)

    def get(self, order_id) -> Optional[Order]:
        """Return a non-deleted order, or None. Malformed ids count as missing."""
        try:
            return self._active().filter(id=order_id).first()
        except (ValueError, TypeError, ValidationError):
            return None

    def find_by_payment_reference(self, reference: str) -> Optional[Order]:
        """Order whose stored transaction or charge id equals ``reference``."""
        return (
            self._active()
            .filter(Q(payment_transaction_id=reference) | Q(payment_charge_id=reference))
            .first()
        )

    def list_page(self, page: int, limit: int, filters: OrderFilters) -> tuple[list[Order], int]:
        qs = self._active().order_by("-created_at")
        if filters.user_id:
            qs = qs.filter(user_id=filters.user_id)
        if filters.status:
            qs = qs.filter(status=filters.status)
        if filters.payment_status:
            qs = qs.filter(payment_status=filters.payment_status)
        total = qs.count()
        offset = (page - 1) * limit
        return list(qs[offset : offset + limit]), total

    def save(self, order: Order, fields: list[str]) -> None:
        order.save(update_fields=[*fields, "updated_at"])

    def soft_delete(self, order: Order) -> None:
        order.deleted_at = timezone.now()
        self.save(order, ["deleted_at"])

    def claim_reservation(self, order: Order) -> bool:
        """Mark the order's stock as reserved; False if it already was."""
        claimed = Order.objects.filter(id=order.id, stock_reserved=False).update(stock_reserved=True)
        if claimed:
            order.stock_reserved = True
        return bool(claimed)

    def release_reservation(self, order: Order) -> bool:
        """Mark the order's stock as released; False if nothing was held."""
        released = Order.objects.filter(id=order.id, stock_reserved=True).update(stock_reserved=False)
        order.stock_reserved = False
        return bool(released)
