"""Tests for the order orchestration flow (create and pay).

The service runs against the real ORM repositories and inventory ledger;
only the payment gateway is replaced by ``FakeGateway`` so each test can
script the outcome.
"""

from decimal import Decimal

import httpx
import pytest

from apps.accounts.directory import CustomerDirectory
from apps.catalog.errors import InsufficientStock, ProductNotFound, ProductNotOrderable
from apps.catalog.inventory import InventoryLedger
from apps.catalog.models import Product
from apps.catalog.repository import ProductRepository
from apps.orders.domain import CreateOrderCommand, OrderItemInput
from apps.orders.errors import EmptyOrder, OrderAlreadyCancelled, OrderAlreadyPaid, UserNotFound
from apps.orders.models import Order
from apps.orders.repository import OrderRepository
from apps.orders.services import OrderService
from apps.payments.domain import BillingAddress, CanonicalStatus, CardData, GatewayTransaction, SplitRule
from apps.payments.errors import CustomerDocumentMissing, CustomerEmailMissing, PaymentDeclined, TransactionNotFound
from apps.payments.split import SplitPolicy

CARD = CardData(number="4000000000000010", holder_name="ANA SOUZA", expiration="1230", cvv="123")
BILLING = BillingAddress(
    country="br",
    state="SP",
    city="Sao Paulo",
    neighborhood="Pinheiros",
    street="Rua dos Pinheiros",
    street_number="100",
    zipcode="05422000",
)


class FakeGateway:
    """Gateway double returning a scripted status (or raising ``error``).

    Charge calls only answer to the charge id handed out by ``create_charge``.
    """

    def __init__(self, status="paid", error=None, tx_id="tran_1", charge_id="ch_1"):
        self.status = status
        self.error = error
        self.tx_id = tx_id
        self.charge_id = charge_id
        self.requests = []
        self.charge_calls = []

    def create_charge(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        canonical = {
            "paid": CanonicalStatus.PAID,
            "processing": CanonicalStatus.PENDING,
        }.get(self.status, CanonicalStatus.FAILED)
        return GatewayTransaction(
            id=self.tx_id,
            canonical_status=canonical,
            raw_status=self.status,
            amount_cents=request.amount_cents,
            message="Insufficient funds" if canonical == CanonicalStatus.FAILED else None,
            charge_id=self.charge_id,
        )

    def _charge_call(self, op, charge_id, amount_cents=None, raw_status="paid"):
        self.charge_calls.append((op, charge_id, amount_cents))
        if charge_id != self.charge_id:
            raise TransactionNotFound(f"Charge {charge_id} not found")
        canonical = CanonicalStatus.PAID if raw_status == "paid" else CanonicalStatus.FAILED
        return GatewayTransaction(
            id=self.tx_id, canonical_status=canonical, raw_status=raw_status, charge_id=charge_id
        )

    def get_transaction(self, charge_id):
        return self._charge_call("get", charge_id)

    def capture(self, charge_id, amount_cents=None):
        return self._charge_call("capture", charge_id, amount_cents)

    def refund(self, charge_id, amount_cents=None):
        return self._charge_call("refund", charge_id, amount_cents, "paid" if amount_cents else "canceled")


def make_service(gateway, split_policy=None):
    return OrderService(
        orders=OrderRepository(),
        products=ProductRepository(),
        inventory=InventoryLedger(),
        customers=CustomerDirectory(),
        payments=gateway,
        split_policy=split_policy or SplitPolicy(enabled=False),
        default_phone="11999999999",
    )


def stock(product):
    return Product.objects.get(id=product.id).quantity


def command(user, items, pay=True, **kw):
    return CreateOrderCommand(
        user_id=str(user.id),
        items=items,
        card=CARD if pay else None,
        payment_address=BILLING if pay else None,
        **kw,
    )


@pytest.mark.django_db
def test_paid_order_reserves_stock_and_records_transaction(make_user, make_product):
    user = make_user()
    product = make_product(price="10.99", quantity=5)
    gateway = FakeGateway("paid")

    order = make_service(gateway).create_order(
        command(user, [OrderItemInput(str(product.id), 3)])
    )

    order.refresh_from_db()
    assert order.total == Decimal("32.97")
    assert order.payment_status == "paid"
    assert order.payment_method == "credit_card"
    assert order.payment_transaction_id == "tran_1"
    assert order.payment_charge_id == "ch_1"
    assert order.status == "pending"
    assert stock(product) == 2
    charge = gateway.requests[0]
    assert charge.amount_cents == 3297
    assert charge.code == str(order.id)
    assert charge.customer.document == "12345678909"
    assert charge.customer.phone_numbers == ["11987654321"]
    assert charge.items[0].unit_price_cents == 1099


@pytest.mark.django_db
def test_order_without_card_stays_pending(make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    gateway = FakeGateway()

    order = make_service(gateway).create_order(
        command(user, [OrderItemInput(str(product.id), 2)], pay=False, shipping_cost=Decimal("5.00"))
    )

    assert order.payment_status == "pending"
    assert order.total == Decimal("25.00")
    assert stock(product) == 3
    assert gateway.requests == []


@pytest.mark.django_db
def test_processing_payment_is_pending(make_user, make_product):
    user = make_user()
    product = make_product(quantity=1)
    order = make_service(FakeGateway("processing")).create_order(
        command(user, [OrderItemInput(str(product.id), 1)])
    )
    assert order.payment_status == "pending"
    assert order.payment_transaction_id == "tran_1"
    assert stock(product) == 0


@pytest.mark.django_db
def test_refused_payment_releases_stock_and_keeps_order(make_user, make_product):
    user = make_user()
    product = make_product(quantity=4)

    with pytest.raises(PaymentDeclined) as exc:
        make_service(FakeGateway("refused")).create_order(
            command(user, [OrderItemInput(str(product.id), 3)])
        )

    assert exc.value.extra["transaction_id"] == "tran_1"
    assert stock(product) == 4
    order = Order.objects.get(user=user)
    assert order.payment_status == "failed"
    assert order.payment_transaction_id == "tran_1"
    assert order.stock_reserved is False


@pytest.mark.django_db
def test_adapter_exception_releases_stock_and_propagates(make_user, make_product):
    user = make_user()
    product = make_product(quantity=2)

    with pytest.raises(httpx.ConnectError):
        make_service(FakeGateway(error=httpx.ConnectError("down"))).create_order(
            command(user, [OrderItemInput(str(product.id), 2)])
        )

    assert stock(product) == 2
    assert Order.objects.get(user=user).payment_status == "failed"


@pytest.mark.django_db
def test_exact_stock_then_sold_out(make_user, make_product):
    user = make_user()
    product = make_product(quantity=1)
    service = make_service(FakeGateway("paid"))

    service.create_order(command(user, [OrderItemInput(str(product.id), 1)]))
    assert stock(product) == 0

    with pytest.raises(InsufficientStock) as exc:
        service.create_order(command(user, [OrderItemInput(str(product.id), 1)]))
    assert exc.value.extra["available_quantity"] == 0
    assert Order.objects.filter(user=user).count() == 1


@pytest.mark.django_db
def test_ordering_exactly_the_stock_then_one_more(make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    service = make_service(FakeGateway("paid"))

    order = service.create_order(command(user, [OrderItemInput(str(product.id), 5)]))
    assert order.payment_status == "paid"
    assert stock(product) == 0

    with pytest.raises(InsufficientStock) as exc:
        service.create_order(command(user, [OrderItemInput(str(product.id), 6)]))
    assert exc.value.extra["available_quantity"] == 0
    assert stock(product) == 0
    assert Order.objects.filter(user=user).count() == 1


@pytest.mark.django_db
def test_failed_reservation_rolls_back_whole_order(make_user, make_product):
    """Duplicate lines pass the per-line check but not the combined decrement."""
    user = make_user()
    a = make_product(quantity=5, name="A")
    b = make_product(quantity=3, name="B")

    with pytest.raises(InsufficientStock):
        make_service(FakeGateway()).create_order(
            command(
                user,
                [OrderItemInput(str(a.id), 2), OrderItemInput(str(b.id), 2), OrderItemInput(str(b.id), 2)],
            )
        )

    assert stock(a) == 5
    assert stock(b) == 3
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_validation_errors(make_user, make_product):
    user = make_user()
    service = make_service(FakeGateway())
    inactive = make_product(status=Product.Status.INACTIVE)
    external = make_product(external_url="https://store.example/p")
    unpriced = make_product(price=None)

    with pytest.raises(UserNotFound):
        service.create_order(CreateOrderCommand(user_id="00000000-0000-0000-0000-000000000000", items=[]))
    with pytest.raises(EmptyOrder):
        service.create_order(command(user, []))
    with pytest.raises(ProductNotFound):
        service.create_order(command(user, [OrderItemInput("00000000-0000-0000-0000-000000000001", 1)]))
    for product in (inactive, external, unpriced):
        with pytest.raises(ProductNotOrderable):
            service.create_order(command(user, [OrderItemInput(str(product.id), 1)]))
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_unlimited_stock_products_are_orderable(make_user, make_product):
    user = make_user()
    product = make_product(quantity=None)
    order = make_service(FakeGateway()).create_order(command(user, [OrderItemInput(str(product.id), 50)]))
    assert order.payment_status == "paid"
    assert stock(product) is None


@pytest.mark.django_db
def test_missing_customer_data_fails_payment_and_releases(make_user, make_product):
    product = make_product(quantity=3)
    no_email = make_user(email=None)
    no_document = make_user(email="b@example.com", document=None)
    gateway = FakeGateway()

    with pytest.raises(CustomerEmailMissing):
        make_service(gateway).create_order(command(no_email, [OrderItemInput(str(product.id), 1)]))
    with pytest.raises(CustomerDocumentMissing):
        make_service(gateway).create_order(command(no_document, [OrderItemInput(str(product.id), 1)]))

    assert stock(product) == 3
    assert gateway.requests == []
    assert set(Order.objects.values_list("payment_status", flat=True)) == {"failed"}


@pytest.mark.django_db
def test_phone_placeholder_corporate_document_and_split(make_user, make_product):
    user = make_user(phone=None, document="12.345.678/0001-99")
    product = make_product(quantity=1)
    gateway = FakeGateway()
    split = SplitPolicy(
        enabled=True,
        recipient_id="rp_platform",
        percentage="10",
        charge_processing_fee=False,
        charge_remainder_fee=False,
        liable=False,
    )

    make_service(gateway, split).create_order(command(user, [OrderItemInput(str(product.id), 1)]))

    charge = gateway.requests[0]
    assert charge.customer.type.value == "corporation"
    assert charge.customer.phone_numbers == ["11999999999"]
    assert charge.split == [SplitRule(recipient_id="rp_platform", percentage=10.0)]


@pytest.mark.django_db
def test_process_payment_after_failure_reserves_again(make_user, make_product):
    user = make_user()
    product = make_product(quantity=2)

    with pytest.raises(PaymentDeclined):
        make_service(FakeGateway("refused")).create_order(command(user, [OrderItemInput(str(product.id), 2)]))
    order = Order.objects.get(user=user)
    assert stock(product) == 2

    paid = make_service(FakeGateway("paid", tx_id="tran_2")).process_payment(
        order.id, CARD, BILLING, requesting_user_id=str(user.id)
    )

    assert paid.payment_status == "paid"
    assert paid.payment_transaction_id == "tran_2"
    assert stock(product) == 0

    with pytest.raises(OrderAlreadyPaid):
        make_service(FakeGateway()).process_payment(order.id, CARD, BILLING, requesting_user_id=str(user.id))


@pytest.mark.django_db
def test_process_payment_refuses_cancelled_order(make_user, make_product):
    user = make_user()
    product = make_product(quantity=2)
    service = make_service(FakeGateway())
    order = service.create_order(command(user, [OrderItemInput(str(product.id), 1)], pay=False))
    service.cancel_order(order.id)

    with pytest.raises(OrderAlreadyCancelled):
        service.process_payment(order.id, CARD, BILLING)


@pytest.mark.django_db
def test_unorderable_product_is_rejected_before_stock_check(make_user, make_product):
    user = make_user()
    unpriced = make_product(price=None, quantity=1)
    external = make_product(external_url="https://store.example/p", quantity=0)
    service = make_service(FakeGateway())

    for product in (unpriced, external):
        with pytest.raises(ProductNotOrderable):
            service.create_order(command(user, [OrderItemInput(str(product.id), 5)]))
    assert stock(unpriced) == 1
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_charge_calls_use_the_stored_charge_id(make_user, make_product):
    user = make_user()
    product = make_product(quantity=2)
    gateway = FakeGateway("paid", tx_id="tran_9", charge_id="ch_9")
    service = make_service(gateway)
    order = service.create_order(command(user, [OrderItemInput(str(product.id), 1)]))
    uid = str(user.id)

    assert service.get_payment_status("tran_9", uid).order_id == str(order.id)
    assert service.get_payment_status("ch_9", uid).status == "paid"
    service.capture_transaction("tran_9", Decimal("10.00"), requesting_user_id=uid)
    service.refund_transaction("tran_9", requesting_user_id=uid)

    assert gateway.charge_calls == [
        ("get", "ch_9", None),
        ("get", "ch_9", None),
        ("capture", "ch_9", 1000),
        ("refund", "ch_9", None),
    ]
    with pytest.raises(TransactionNotFound):
        service.get_payment_status("tran_unknown", uid)


@pytest.mark.django_db
def test_partial_refund_keeps_order_paid(make_user, make_product):
    user = make_user()
    product = make_product(price="10.00", quantity=2)
    gateway = FakeGateway("paid")
    service = make_service(gateway)
    order = service.create_order(command(user, [OrderItemInput(str(product.id), 2)]))
    uid = str(user.id)

    service.refund_transaction("tran_1", Decimal("5.00"), requesting_user_id=uid)
    order.refresh_from_db()
    assert order.payment_status == "paid"
    assert gateway.charge_calls[-1] == ("refund", "ch_1", 500)

    service.refund_transaction("tran_1", requesting_user_id=uid)
    order.refresh_from_db()
    assert order.payment_status == "refunded"
    assert stock(product) == 0
