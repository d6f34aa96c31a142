"""Order orchestration service.

``OrderService`` drives an order through validation, pricing, persistence
with stock reservation, payment and reconciliation, and owns the rest of the
order lifecycle (read, list, update, cancel, soft-delete, cart pre-flight,
payment status, capture and refund).

Collaborators are injected as ports so tests can swap any of them:

- ``orders``: ``OrderRepository`` (ORM persistence)
- ``products``: product lookups (``ProductCatalogPort``)
- ``inventory``: atomic stock movements (``InventoryPort``)
- ``customers``: buyer identity (``CustomerDirectoryPort``)
- ``payments``: the payment gateway adapter (``PaymentGatewayPort``)
- ``split_policy``: revenue split rules (``SplitPolicyPort``)

Stock bookkeeping relies on the order's ``stock_reserved`` flag: stock is
given back only by the caller that flips the flag from True to False, so a
payment failure followed by a cancel or a delete never releases twice.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction

from apps.catalog.errors import InsufficientStock, ProductNotFound, ProductNotOrderable
from apps.payments.domain import (
    BillingAddress,
    CanonicalStatus,
    CardData,
    ChargeRequest,
    CustomerData,
    GatewayTransaction,
    PaymentGatewayPort,
    TransactionItem,
)
from apps.payments.errors import PaymentDeclined, TransactionNotFound

from .domain import (
    CANCELLABLE_STATUSES,
    CartIssue,
    CartItemValidation,
    CartValidationResult,
    CreateOrderCommand,
    CustomerDirectoryPort,
    InventoryPort,
    OrderFilters,
    OrderItemInput,
    OrderStatus,
    PaymentStatus,
    PaymentStatusInfo,
    ProductCatalogPort,
    SplitPolicyPort,
)
from .errors import (
    EmptyOrder,
    InvalidOrderUpdate,
    OrderAlreadyCancelled,
    OrderAlreadyPaid,
    OrderAuthorizationError,
    OrderNotCancellable,
    OrderNotFound,
    UserNotFound,
)
from .models import Order
from .pricing import calculate_order_totals, from_minor_units, to_minor_units
from .repository import OrderRepository
from .resolvers import customer_type_for, resolve_document, resolve_email, resolve_phone

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"status", "payment_status", "tracking_number", "shipping_address", "billing_address", "notes"}
)
MAX_PAGE_SIZE = 100


class OrderService:
    """Application service orchestrating orders, stock and payments."""

    def __init__(
        self,
        orders: OrderRepository,
        products: ProductCatalogPort,
        inventory: InventoryPort,
        customers: CustomerDirectoryPort,
        payments: PaymentGatewayPort,
        split_policy: SplitPolicyPort,
        default_phone: str = "11999999999",
        default_country: str = "br",
    ):
        self.orders = orders
        self.products = products
        self.inventory = inventory
        self.customers = customers
        self.payments = payments
        self.split_policy = split_policy
        self.default_phone = default_phone
        self.default_country = default_country

    # ---------------- Creation & payment ---------------- #

    def create_order(self, command: CreateOrderCommand) -> Order:
        """Create an order, reserve its stock and optionally charge it.

        Payment is attempted only when both ``command.card`` and
        ``command.payment_address`` are present; otherwise the order is
        returned as ``pending``.

        Args:
            command: Validated create command.

        Returns:
            Order: The persisted order after reconciliation.

        Raises:
            UserNotFound: If the user does not exist or is deleted.
            EmptyOrder: If no items were requested.
            ProductNotFound: If an item references a missing product.
            ProductNotOrderable: If a product is inactive, external or unpriced.
            InsufficientStock: If tracked stock cannot cover an item.
            PaymentDeclined: If the gateway refused the charge. The order
                is kept with ``payment_status=failed`` and its stock released.
        """
        if not self.customers.exists(command.user_id):
            raise UserNotFound(f"User {command.user_id} not found")
        if not command.items:
            raise EmptyOrder("The order must contain at least one item")

        products = {}
        for item in command.items:
            product = self.products.find_by_id(item.product_id)
            if product is None:
                raise ProductNotFound(f"Product {item.product_id} not found")
            if not product.is_active:
                raise ProductNotOrderable(f"Product {product.name} is not available")
            if product.external_url or product.price is None:
                raise ProductNotOrderable(f"Product {product.name} cannot be ordered through checkout")
            if product.is_stock_tracked and product.quantity < item.quantity:
                raise InsufficientStock(
                    f"Insufficient stock for product {product.name}",
                    product_id=product.id,
                    available_quantity=product.quantity,
                )
            products[str(item.product_id)] = product

        totals = calculate_order_totals(command.items, products, command.shipping_cost, command.tax)

        with transaction.atomic():
            order = self.orders.create(command, totals)
            for priced in totals.items:
                if not self.inventory.reserve(priced.product.id, priced.quantity):
                    # rolls back the order row and earlier reservations
                    raise InsufficientStock(
                        f"Insufficient stock for product {priced.product.name}",
                        product_id=priced.product.id,
                    )

        logger.info(
            "order created",
            extra={"order_id": str(order.id), "user_id": str(command.user_id), "total": str(order.total)},
        )

        if command.card is not None and command.payment_address is not None:
            self._pay(order, command.card, command.payment_address)
        return order

    def process_payment(
        self,
        order_id,
        card: CardData,
        billing: BillingAddress,
        requesting_user_id=None,
    ) -> Order:
        """Charge an existing order.

        Stock released by an earlier failed attempt is reserved again before
        the gateway is called.

        Raises:
            OrderAlreadyPaid: If the order was already paid or refunded.
            OrderAlreadyCancelled: If the order was cancelled.
            InsufficientStock: If released stock can no longer be reserved.
        """
        order = self.get_order(order_id, requesting_user_id)
        if order.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
            raise OrderAlreadyPaid(f"Order {order.id} is already paid")
        if order.status == OrderStatus.CANCELLED.value:
            raise OrderAlreadyCancelled(f"Order {order.id} is cancelled")

        if not order.stock_reserved:
            self._reserve_stock(order)

        self._pay(order, card, billing)
        return order

    def _reserve_stock(self, order: Order) -> None:
        with transaction.atomic():
            if not self.orders.claim_reservation(order):
                return
            for item in order.items.all():
                if not self.inventory.reserve(item.product_id, item.quantity):
                    raise InsufficientStock(
                        f"Insufficient stock for product {item.product.name}",
                        product_id=str(item.product_id),
                    )
        logger.info("order stock reserved again", extra={"order_id": str(order.id)})

    def _release_stock(self, order: Order) -> bool:
        """Give the order's units back, at most once per reservation."""
        with transaction.atomic():
            if not self.orders.release_reservation(order):
                return False
            for item in order.items.all():
                self.inventory.release(item.product_id, item.quantity)
        logger.info("order stock released", extra={"order_id": str(order.id)})
        return True

    def _build_charge(self, order: Order, card: CardData, billing: BillingAddress) -> ChargeRequest:
        profile = self.customers.get_profile(order.user_id)
        if profile is None:
            raise UserNotFound(f"User {order.user_id} not found")

        email = resolve_email(profile.email)
        document = resolve_document(card.document, profile.document)
        phone = resolve_phone(card.phone, profile.phone, self.default_phone)

        customer = CustomerData(
            external_id=str(order.user_id),
            name=profile.name or card.holder_name,
            email=email,
            type=customer_type_for(document),
            country=self.default_country,
            document=document,
            phone_numbers=[phone],
        )
        items = [
            TransactionItem(
                id=str(item.product_id),
                title=item.product.name,
                unit_price_cents=to_minor_units(item.unit_price),
                quantity=item.quantity,
                code=item.product.sku,
            )
            for item in order.items.all()
        ]
        return ChargeRequest(
            code=str(order.id),
            amount_cents=to_minor_units(order.total),
            card=card,
            customer=customer,
            billing_address=billing,
            items=items,
            metadata={"order_id": str(order.id), "user_id": str(order.user_id)},
            split=self.split_policy.calculate_split(order),
        )

    def _pay(self, order: Order, card: CardData, billing: BillingAddress) -> GatewayTransaction:
        try:
            charge = self._build_charge(order, card, billing)
            result = self.payments.create_charge(charge)
        except Exception:
            logger.exception("payment attempt failed", extra={"order_id": str(order.id)})
            self._mark_payment_failed(order, None, None)
            raise

        if result.canonical_status == CanonicalStatus.FAILED:
            logger.warning(
                "payment declined",
                extra={
                    "order_id": str(order.id),
                    "transaction_id": result.id,
                    "gateway_status": result.raw_status,
                },
            )
            self._mark_payment_failed(order, result.id, result.charge_id)
            raise PaymentDeclined(
                result.message or "The payment was declined",
                transaction_id=result.id,
                gateway_status=result.raw_status,
            )

        order.payment_status = (
            PaymentStatus.PAID.value
            if result.canonical_status == CanonicalStatus.PAID
            else PaymentStatus.PENDING.value
        )
        order.payment_method = "credit_card"
        order.payment_transaction_id = result.id
        order.payment_charge_id = result.charge_id
        self.orders.save(
            order, ["payment_status", "payment_method", "payment_transaction_id", "payment_charge_id"]
        )
        logger.info(
            "payment reconciled",
            extra={
                "order_id": str(order.id),
                "transaction_id": result.id,
                "payment_status": order.payment_status,
            },
        )
        return result

    def _mark_payment_failed(
        self, order: Order, transaction_id: Optional[str], charge_id: Optional[str]
    ) -> None:
        order.payment_status = PaymentStatus.FAILED.value
        fields = ["payment_status"]
        if transaction_id:
            order.payment_transaction_id = transaction_id
            order.payment_charge_id = charge_id
            fields += ["payment_transaction_id", "payment_charge_id"]
        self.orders.save(order, fields)
        self._release_stock(order)

    # ---------------- Queries & lifecycle ---------------- #

    def get_order(self, order_id, requesting_user_id=None) -> Order:
        """Return an order visible to ``requesting_user_id``.

        ``requesting_user_id=None`` is internal access and skips the owner
        check.

        Raises:
            OrderNotFound: If the order does not exist or was soft-deleted.
            OrderAuthorizationError: If the order belongs to another user.
        """
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        self._check_owner(order, requesting_user_id)
        return order

    @staticmethod
    def _check_owner(order: Order, requesting_user_id) -> None:
        if requesting_user_id is not None and str(order.user_id) != str(requesting_user_id):
            logger.warning(
                "order access denied",
                extra={"order_id": str(order.id), "requesting_user_id": str(requesting_user_id)},
            )
            raise OrderAuthorizationError("You are not allowed to access this order")

    def list_orders(
        self,
        page: int = 1,
        limit: int = 20,
        filters: Optional[OrderFilters] = None,
        requesting_user_id=None,
    ) -> tuple[list[Order], int]:
        """Return one page of non-deleted orders and the total count.

        A requesting user only ever sees their own orders, whatever
        ``filters.user_id`` says.
        """
        filters = filters or OrderFilters()
        if requesting_user_id is not None:
            filters = OrderFilters(
                status=filters.status,
                payment_status=filters.payment_status,
                user_id=str(requesting_user_id),
            )
        page = max(1, int(page))
        limit = min(max(1, int(limit)), MAX_PAGE_SIZE)
        return self.orders.list_page(page, limit, filters)

    def update_order(self, order_id, changes: dict, requesting_user_id=None) -> Order:
        """Apply a partial update to the mutable order fields.

        Totals and inventory are never touched here; cancellation has its own
        operation because it gives stock back.

        Raises:
            OrderNotFound: If the order does not exist or was soft-deleted.
            OrderAuthorizationError: If the order belongs to another user;
                checked before the changes are looked at.
            InvalidOrderUpdate: For unknown fields, invalid status values or
                ``status="cancelled"``.
        """
        order = self.get_order(order_id, requesting_user_id)
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidOrderUpdate(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        status = changes.get("status")
        if status is not None:
            if status not in {s.value for s in OrderStatus}:
                raise InvalidOrderUpdate(f"Invalid order status: {status}")
            if status == OrderStatus.CANCELLED.value:
                raise InvalidOrderUpdate("Use the cancel operation to cancel an order")
        payment_status = changes.get("payment_status")
        if payment_status is not None and payment_status not in {s.value for s in PaymentStatus}:
            raise InvalidOrderUpdate(f"Invalid payment status: {payment_status}")

        if not changes:
            return order
        for name, value in changes.items():
            setattr(order, name, value)
        self.orders.save(order, sorted(changes))
        logger.info("order updated", extra={"order_id": str(order.id), "fields": sorted(changes)})
        return order

    def cancel_order(self, order_id, requesting_user_id=None) -> Order:
        """Cancel a pending or processing order and give its stock back.

        Raises:
            OrderAlreadyCancelled: If the order is already cancelled.
            OrderNotCancellable: If the order was shipped or delivered.
        """
        order = self.get_order(order_id, requesting_user_id)
        if order.status == OrderStatus.CANCELLED.value:
            raise OrderAlreadyCancelled(f"Order {order.id} is already cancelled")
        if OrderStatus(order.status) not in CANCELLABLE_STATUSES:
            raise OrderNotCancellable(f"Order {order.id} is {order.status} and cannot be cancelled")

        with transaction.atomic():
            self._release_stock(order)
            order.status = OrderStatus.CANCELLED.value
            self.orders.save(order, ["status"])
        logger.info("order cancelled", extra={"order_id": str(order.id)})
        return order

    def delete_order(self, order_id, requesting_user_id=None, restore_stock: bool = False) -> None:
        """Soft-delete an order, optionally giving its reserved stock back."""
        order = self.get_order(order_id, requesting_user_id)
        with transaction.atomic():
            if restore_stock:
                self._release_stock(order)
            self.orders.soft_delete(order)
        logger.info(
            "order deleted", extra={"order_id": str(order.id), "restore_stock": restore_stock}
        )

    def validate_cart_items(self, items: list[OrderItemInput]) -> CartValidationResult:
        """Check each cart line without reserving anything.

        Products without tracked stock (no quantity, or sold externally)
        are never reported as out of stock.
        """
        result = CartValidationResult()
        for item in items:
            verdict = CartItemValidation(
                product_id=str(item.product_id), requested_quantity=item.quantity
            )
            product = self.products.find_by_id(item.product_id)
            if product is None:
                verdict.reason = CartIssue.NOT_FOUND
            elif not product.is_active:
                verdict.reason = CartIssue.INACTIVE
            elif product.external_url:
                verdict.reason = CartIssue.EXTERNAL_URL
            elif product.price is None:
                verdict.reason = CartIssue.NO_PRICE
            elif product.is_stock_tracked and product.quantity <= 0:
                verdict.reason = CartIssue.OUT_OF_STOCK
                verdict.available_quantity = 0
            elif product.is_stock_tracked and product.quantity < item.quantity:
                verdict.reason = CartIssue.INSUFFICIENT_STOCK
                verdict.available_quantity = product.quantity
            else:
                verdict.valid = True

            if verdict.valid:
                result.valid_items.append(item)
            else:
                result.invalid_items.append(verdict)
        return result

    # ---------------- Transactions ---------------- #

    def _transaction_order(self, reference: str, requesting_user_id) -> Optional[Order]:
        order = self.orders.find_by_payment_reference(reference)
        if order is None:
            if requesting_user_id is not None:
                raise TransactionNotFound(f"Transaction {reference} not found")
            return None
        self._check_owner(order, requesting_user_id)
        return order

    @staticmethod
    def _charge_reference(order: Optional[Order], reference: str) -> str:
        """Charge id the gateway's charge endpoints are addressed by."""
        if order is not None and order.payment_charge_id:
            return order.payment_charge_id
        return reference

    def get_payment_status(self, transaction_id: str, requesting_user_id=None) -> PaymentStatusInfo:
        """Fetch the order's charge from the gateway, after the owner check.

        ``transaction_id`` may be the transaction or the charge reference
        stored on the order.
        """
        order = self._transaction_order(transaction_id, requesting_user_id)
        result = self.payments.get_transaction(self._charge_reference(order, transaction_id))
        return PaymentStatusInfo(
            transaction_id=result.id or transaction_id,
            status=result.canonical_status.value,
            raw_status=result.raw_status,
            amount=from_minor_units(result.amount_cents),
            order_id=str(order.id) if order else None,
            message=result.message,
        )

    def capture_transaction(
        self, transaction_id: str, amount: Optional[Decimal] = None, requesting_user_id=None
    ) -> GatewayTransaction:
        """Capture a pre-authorized charge (whole or ``amount`` major units)."""
        order = self._transaction_order(transaction_id, requesting_user_id)
        amount_cents = to_minor_units(amount) if amount is not None else None
        result = self.payments.capture(self._charge_reference(order, transaction_id), amount_cents)
        if order is not None and result.canonical_status == CanonicalStatus.PAID:
            order.payment_status = PaymentStatus.PAID.value
            self.orders.save(order, ["payment_status"])
        logger.info(
            "transaction captured",
            extra={"transaction_id": transaction_id, "status": result.canonical_status.value},
        )
        return result

    def refund_transaction(
        self, transaction_id: str, amount: Optional[Decimal] = None, requesting_user_id=None
    ) -> GatewayTransaction:
        """Refund a charge, fully or partially.

        The owning order becomes ``refunded`` only for a full refund: no
        ``amount``, an amount covering the order total, or the gateway
        reporting the charge as canceled. Stock is not given back.
        """
        order = self._transaction_order(transaction_id, requesting_user_id)
        amount_cents = to_minor_units(amount) if amount is not None else None
        result = self.payments.refund(self._charge_reference(order, transaction_id), amount_cents)
        if order is not None:
            full = (
                amount_cents is None
                or amount_cents >= to_minor_units(order.total)
                or (result.raw_status or "").lower() == "canceled"
            )
            if full:
                order.payment_status = PaymentStatus.REFUNDED.value
                self.orders.save(order, ["payment_status"])
        logger.info(
            "transaction refunded",
            extra={"transaction_id": transaction_id, "amount_cents": amount_cents},
        )
        return result
