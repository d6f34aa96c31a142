"""Domain types and ports for orders.

This module contains the enums describing the order and payment lifecycles,
simple dataclasses used as commands/DTOs by the order service, and protocol
definitions (ports) for the collaborators the service orchestrates: the
product catalog, the inventory ledger, the customer directory and the split
policy. The payment gateway port lives in ``apps.payments.domain``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol

from apps.accounts.directory import CustomerProfile
from apps.catalog.repository import ProductSnapshot
from apps.payments.domain import BillingAddress, CardData, SplitRule


# ---- Enums ----
class OrderStatus(str, Enum):
    """Fulfilment lifecycle of an order.

    ``pending`` and ``processing`` orders can be cancelled; ``shipped`` and
    ``delivered`` orders cannot.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


class PaymentStatus(str, Enum):
    """Payment lifecycle, independent of the fulfilment status."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CartIssue(str, Enum):
    """Reasons a cart item cannot be checked out."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXTERNAL_URL = "external_url"
    NO_PRICE = "no_price"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


# ---- Commands / DTOs ----
@dataclass(frozen=True)
class OrderItemInput:
    """A requested order line.

    Attributes:
        product_id: Identifier of the catalog product.
        quantity: Positive number of units.
        discount: Absolute discount for the whole line, defaults to zero.
    """

    product_id: str
    quantity: int
    discount: Decimal = Decimal("0")


@dataclass
class CreateOrderCommand:
    """Input of ``OrderService.create_order``.

    ``card`` and ``payment_address`` are optional; when both are present the
    payment is attempted as part of the creation.
    """

    user_id: str
    items: List[OrderItemInput]
    shipping_cost: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    tracking_number: Optional[str] = None
    card: Optional[CardData] = None
    payment_address: Optional[BillingAddress] = None


@dataclass(frozen=True)
class OrderFilters:
    status: Optional[str] = None
    payment_status: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class CartItemValidation:
    """Pre-flight verdict for one cart item."""

    product_id: str
    requested_quantity: int
    valid: bool = False
    reason: Optional[CartIssue] = None
    available_quantity: Optional[int] = None


@dataclass
class CartValidationResult:
    valid_items: List[OrderItemInput] = field(default_factory=list)
    invalid_items: List[CartItemValidation] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentStatusInfo:
    """Gateway view of a transaction, with the amount in major units."""

    transaction_id: str
    status: str
    raw_status: Optional[str]
    amount: Optional[Decimal]
    order_id: Optional[str] = None
    message: Optional[str] = None


# ---- Ports (DIP) ----
class ProductCatalogPort(Protocol):
    """Port describing product lookups used by the order service."""

    def find_by_id(self, product_id) -> Optional[ProductSnapshot]:
        """Return the product, or None when it does not exist or is deleted."""
        raise NotImplementedError()


class InventoryPort(Protocol):
    """Port describing stock movements used by the order service.

    Implementers must perform each movement atomically and ignore products
    that are not stock-tracked.
    """

    def reserve(self, product_id, quantity: int) -> bool:
        """Decrement stock; False when fewer than ``quantity`` units remain."""
        raise NotImplementedError()

    def release(self, product_id, quantity: int) -> None:
        """Increment stock by ``quantity`` units."""
        raise NotImplementedError()


class CustomerDirectoryPort(Protocol):
    """Port describing access to buyer identity."""

    def exists(self, user_id) -> bool:
        raise NotImplementedError()

    def get_profile(self, user_id) -> Optional[CustomerProfile]:
        raise NotImplementedError()


class SplitPolicyPort(Protocol):
    """Port computing the revenue split of a charge (None disables it)."""

    def calculate_split(self, order=None) -> Optional[List[SplitRule]]:
        raise NotImplementedError()
