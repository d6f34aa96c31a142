"""Order pricing with exact decimal arithmetic.

Currency amounts are ``Decimal`` values quantized to cents; floats are never
used for money. Amounts sent to the payment gateway are integer minor units.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Mapping, Optional, Sequence

from apps.catalog.errors import ProductNotFound, ProductNotOrderable
from apps.catalog.repository import ProductSnapshot

from .domain import OrderItemInput
from .errors import InvalidDiscount

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert a user-supplied number into a cent-quantized ``Decimal``.

    Floats go through ``str`` so ``10.1`` becomes ``Decimal("10.10")`` and not
    its binary approximation. None becomes zero.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a major-unit amount into integer cents, rounding half up."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


@dataclass(frozen=True)
class PricedItem:
    product: ProductSnapshot
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    items: List[PricedItem]
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal


def item_total(unit_price, quantity: int, discount=None) -> Decimal:
    """``unit_price × quantity − discount``.

    Raises:
        InvalidDiscount: If the discount is negative or exceeds the line amount.
    """
    gross = to_decimal(unit_price) * quantity
    disc = to_decimal(discount)
    if disc < 0 or disc > gross:
        raise InvalidDiscount(f"Discount {disc} must be between 0 and {gross}")
    return (gross - disc).quantize(CENT)


def _orderable_price(product: ProductSnapshot) -> Decimal:
    if product.external_url:
        raise ProductNotOrderable(
            f"Product {product.name} is sold on an external storefront and cannot be added to the cart"
        )
    if product.price is None:
        raise ProductNotOrderable(f"Product {product.name} does not have a price")
    return to_decimal(product.price)


def calculate_order_totals(
    items: Sequence[OrderItemInput],
    products: Mapping[str, ProductSnapshot],
    shipping_cost=None,
    tax=None,
) -> OrderTotals:
    """Price every item against the current product prices.

    Args:
        items: Requested order lines.
        products: Current product snapshots keyed by the requested product id.
        shipping_cost: Optional shipping cost, defaults to zero.
        tax: Optional tax amount, defaults to zero.

    Returns:
        OrderTotals: Priced lines plus subtotal, shipping, tax and total,
        where ``total == subtotal + shipping_cost + tax``.

    Raises:
        ProductNotFound: If an item references an unknown product.
        ProductNotOrderable: If a product has no price or an external URL.
        InvalidDiscount: If a discount is out of range.
    """
    priced: List[PricedItem] = []
    subtotal = Decimal("0.00")
    for item in items:
        product = products.get(str(item.product_id))
        if product is None:
            raise ProductNotFound(f"Product {item.product_id} not found")
        unit_price = _orderable_price(product)
        discount = to_decimal(item.discount)
        line_total = item_total(unit_price, item.quantity, discount)
        subtotal += line_total
        priced.append(
            PricedItem(
                product=product,
                quantity=item.quantity,
                unit_price=unit_price,
                discount=discount,
                total=line_total,
            )
        )

    shipping = to_decimal(shipping_cost)
    tax_amount = to_decimal(tax)
    return OrderTotals(
        items=priced,
        subtotal=subtotal,
        shipping_cost=shipping,
        tax=tax_amount,
        total=subtotal + shipping + tax_amount,
    )
