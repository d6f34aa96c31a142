"""Read, list, update, cancel, delete and cart pre-flight through OrderService."""

import uuid

import pytest

from apps.catalog.models import Product
from apps.orders.domain import CartIssue, CreateOrderCommand, OrderFilters, OrderItemInput
from apps.orders.errors import (
    InvalidOrderUpdate,
    OrderAlreadyCancelled,
    OrderAuthorizationError,
    OrderNotCancellable,
    OrderNotFound,
)
from apps.orders.models import Order
from apps.orders.providers import get_order_service
from apps.orders.repository import OrderRepository


def stock(product):
    return Product.objects.get(id=product.id).quantity


@pytest.fixture
def service():
    return get_order_service()


@pytest.fixture
def place(service):
    def _place(user, product, quantity=1):
        return service.create_order(
            CreateOrderCommand(user_id=str(user.id), items=[OrderItemInput(str(product.id), quantity)])
        )

    return _place


@pytest.mark.django_db
def test_get_order_checks_owner(service, place, make_user, make_product):
    owner = make_user()
    other = make_user(email="other@example.com")
    order = place(owner, make_product())

    assert service.get_order(order.id, str(owner.id)).id == order.id
    assert service.get_order(order.id).id == order.id
    with pytest.raises(OrderAuthorizationError):
        service.get_order(order.id, str(other.id))
    with pytest.raises(OrderNotFound):
        service.get_order(uuid.uuid4(), str(owner.id))
    with pytest.raises(OrderNotFound):
        service.get_order("not-a-uuid")


@pytest.mark.django_db
def test_list_orders_is_scoped_to_the_requesting_user(service, place, make_user, make_product):
    ana = make_user()
    bob = make_user(email="bob@example.com")
    product = make_product(quantity=None)
    for _ in range(3):
        place(ana, product)
    place(bob, product)

    orders, total = service.list_orders(
        page=1, limit=2, filters=OrderFilters(user_id=str(bob.id)), requesting_user_id=str(ana.id)
    )
    assert total == 3
    assert len(orders) == 2
    assert {str(o.user_id) for o in orders} == {str(ana.id)}

    orders, total = service.list_orders(page=2, limit=2, requesting_user_id=str(ana.id))
    assert total == 3
    assert len(orders) == 1

    _, total = service.list_orders(filters=OrderFilters(status="cancelled"), requesting_user_id=str(ana.id))
    assert total == 0


@pytest.mark.django_db
def test_update_order_fields(service, place, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    order = place(user, product, 2)

    updated = service.update_order(
        order.id, {"status": "shipped", "tracking_number": "BR123"}, requesting_user_id=str(user.id)
    )

    assert updated.status == "shipped"
    assert Order.objects.get(id=order.id).tracking_number == "BR123"
    assert stock(product) == 3


@pytest.mark.django_db
@pytest.mark.parametrize(
    "changes",
    [{"status": "cancelled"}, {"status": "lost"}, {"payment_status": "chargeback"}, {"total": "1.00"}],
)
def test_update_order_rejects_invalid_changes(service, place, make_user, make_product, changes):
    user = make_user()
    order = place(user, make_product())
    with pytest.raises(InvalidOrderUpdate):
        service.update_order(order.id, changes, requesting_user_id=str(user.id))


@pytest.mark.django_db
def test_cancel_releases_stock_once(service, place, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    order = place(user, product, 2)
    assert stock(product) == 3

    cancelled = service.cancel_order(order.id, str(user.id))

    assert cancelled.status == "cancelled"
    assert stock(product) == 5
    with pytest.raises(OrderAlreadyCancelled):
        service.cancel_order(order.id, str(user.id))
    service.delete_order(order.id, str(user.id), restore_stock=True)
    assert stock(product) == 5


@pytest.mark.django_db
def test_shipped_order_cannot_be_cancelled(service, place, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    order = place(user, product)
    service.update_order(order.id, {"status": "shipped"})

    with pytest.raises(OrderNotCancellable):
        service.cancel_order(order.id, str(user.id))
    assert stock(product) == 4


@pytest.mark.django_db
def test_cancel_by_another_user_is_forbidden(service, place, make_user, make_product):
    order = place(make_user(), make_product())
    intruder = make_user(email="x@example.com")
    with pytest.raises(OrderAuthorizationError):
        service.cancel_order(order.id, str(intruder.id))
    assert Order.objects.get(id=order.id).status == "pending"


@pytest.mark.django_db
@pytest.mark.parametrize("restore, expected", [(False, 1), (True, 3)])
def test_delete_order_soft_deletes(service, place, make_user, make_product, restore, expected):
    user = make_user()
    product = make_product(quantity=3)
    order = place(user, product, 2)

    service.delete_order(order.id, str(user.id), restore_stock=restore)

    assert Order.objects.get(id=order.id).deleted_at is not None
    assert stock(product) == expected
    with pytest.raises(OrderNotFound):
        service.get_order(order.id, str(user.id))


@pytest.mark.django_db
@pytest.mark.parametrize("changes", [{"notes": "mine now"}, {"status": "lost"}, {"total": "1.00"}])
def test_update_by_another_user_is_forbidden(service, place, make_user, make_product, changes):
    order = place(make_user(), make_product())
    intruder = make_user(email="x@example.com")

    with pytest.raises(OrderAuthorizationError):
        service.update_order(order.id, changes, requesting_user_id=str(intruder.id))

    stored = Order.objects.get(id=order.id)
    assert stored.notes is None
    assert stored.status == "pending"


@pytest.mark.django_db
def test_delete_by_another_user_is_forbidden(service, place, make_user, make_product):
    product = make_product(quantity=3)
    order = place(make_user(), product, 2)
    intruder = make_user(email="x@example.com")

    with pytest.raises(OrderAuthorizationError):
        service.delete_order(order.id, str(intruder.id), restore_stock=True)

    assert Order.objects.get(id=order.id).deleted_at is None
    assert stock(product) == 1


@pytest.mark.django_db
def test_repository_list_page(place, make_user, make_product):
    user = make_user()
    product = make_product(quantity=None)
    for _ in range(3):
        place(user, product)

    orders, total = OrderRepository().list_page(1, 2, OrderFilters(user_id=str(user.id)))
    assert total == 3
    assert len(orders) == 2


@pytest.mark.django_db
def test_validate_cart_reports_each_issue(service, make_product):
    ok = make_product(quantity=5)
    untracked = make_product(quantity=None)
    inactive = make_product(status=Product.Status.INACTIVE)
    external = make_product(external_url="https://store.example/p", quantity=0)
    unpriced = make_product(price=None)
    empty = make_product(quantity=0)
    short = make_product(quantity=2)
    missing = str(uuid.uuid4())

    result = service.validate_cart_items(
        [
            OrderItemInput(str(ok.id), 5),
            OrderItemInput(str(untracked.id), 99),
            OrderItemInput(missing, 1),
            OrderItemInput(str(inactive.id), 1),
            OrderItemInput(str(external.id), 1),
            OrderItemInput(str(unpriced.id), 1),
            OrderItemInput(str(empty.id), 1),
            OrderItemInput(str(short.id), 3),
        ]
    )

    assert [i.product_id for i in result.valid_items] == [str(ok.id), str(untracked.id)]
    reasons = {v.product_id: (v.reason, v.available_quantity) for v in result.invalid_items}
    assert reasons == {
        missing: (CartIssue.NOT_FOUND, None),
        str(inactive.id): (CartIssue.INACTIVE, None),
        str(external.id): (CartIssue.EXTERNAL_URL, None),
        str(unpriced.id): (CartIssue.NO_PRICE, None),
        str(empty.id): (CartIssue.OUT_OF_STOCK, 0),
        str(short.id): (CartIssue.INSUFFICIENT_STOCK, 2),
    }
    assert stock(ok) == 5
