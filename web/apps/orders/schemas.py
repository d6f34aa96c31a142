"""Pydantic schemas for orders.

This module exposes the request schemas used by the orders API (create,
partial update, cart validation) and the read DTOs used to render orders.
Card and billing address schemas come from ``apps.payments.schemas``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from apps.payments.schemas import BillingAddressIn, CardIn

from .domain import CreateOrderCommand, OrderItemInput


class OrderItemIn(BaseModel):
    """Input schema for a single order line item.

    Attributes:
        product_id: Catalog product UUID.
        quantity: Positive integer indicating units requested.
        discount: Absolute discount for the line, in major units.
    """

    product_id: UUID
    quantity: int = Field(gt=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)

    def to_domain(self) -> OrderItemInput:
        return OrderItemInput(
            product_id=str(self.product_id), quantity=self.quantity, discount=self.discount
        )


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Empty ``items`` pass validation here so the service reports
    ``EMPTY_ORDER``. ``card`` and ``billing`` are both needed to charge the
    order during creation.
    """

    items: list[OrderItemIn] = Field(default_factory=list)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    tax: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    payment_method: Optional[str] = Field(default=None, max_length=32)
    tracking_number: Optional[str] = Field(default=None, max_length=128)
    card: Optional[CardIn] = None
    billing: Optional[BillingAddressIn] = None

    def to_command(self, user_id: str) -> CreateOrderCommand:
        return CreateOrderCommand(
            user_id=user_id,
            items=[i.to_domain() for i in self.items],
            shipping_cost=self.shipping_cost,
            tax=self.tax,
            shipping_address=self.shipping_address,
            billing_address=self.billing_address,
            notes=self.notes,
            payment_method=self.payment_method,
            tracking_number=self.tracking_number,
            card=self.card.to_domain() if self.card else None,
            payment_address=self.billing.to_domain() if self.billing else None,
        )


class OrderPatchDTO(BaseModel):
    """Partial update; only the listed fields are accepted."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[Literal["pending", "processing", "shipped", "delivered", "cancelled"]] = None
    payment_status: Optional[Literal["pending", "paid", "failed", "refunded"]] = None
    tracking_number: Optional[str] = Field(default=None, max_length=128)
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class CartValidationDTO(BaseModel):
    items: list[OrderItemIn] = Field(min_length=1)


# ---- Read DTOs ----
class OrderItemReadDTO(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total: Decimal


class OrderReadDTO(BaseModel):
    id: str
    user_id: str
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    charge_id: Optional[str] = None
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    items: list[OrderItemReadDTO] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, o) -> "OrderReadDTO":
        return cls(
            id=str(o.id),
            user_id=str(o.user_id),
            status=o.status,
            payment_status=o.payment_status,
            payment_method=o.payment_method,
            transaction_id=o.payment_transaction_id,
            charge_id=o.payment_charge_id,
            subtotal=o.subtotal,
            shipping_cost=o.shipping_cost,
            tax=o.tax,
            total=o.total,
            shipping_address=o.shipping_address,
            billing_address=o.billing_address,
            notes=o.notes,
            tracking_number=o.tracking_number,
            items=[
                OrderItemReadDTO(
                    product_id=str(i.product_id),
                    product_name=i.product.name,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    discount=i.discount,
                    total=i.total,
                )
                for i in o.items.all()
            ],
            created_at=o.created_at,
            updated_at=o.updated_at,
        )
