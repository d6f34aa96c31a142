"""Idempotency-Key handling on order creation."""

import pytest

from apps.catalog.models import Product
from apps.orders.models import IdempotencyKey, Order

ORDERS_URL = "/api/orders/"


def create(client, user, body, key):
    return client.post(
        ORDERS_URL,
        data=body,
        content_type="application/json",
        HTTP_X_USER_ID=str(user.id),
        HTTP_IDEMPOTENCY_KEY=key,
    )


@pytest.mark.django_db
def test_retry_replays_the_first_response(client, make_user, make_product, card_payload, billing_payload):
    user = make_user()
    product = make_product(quantity=5)
    body = {"items": [{"product_id": str(product.id), "quantity": 2}], "card": card_payload, "billing": billing_payload}

    first = create(client, user, body, "idem-1")
    second = create(client, user, body, "idem-1")

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json() == first.json()
    assert second["Idempotent-Replay"] == "true"
    assert not first.has_header("Idempotent-Replay")
    assert Order.objects.count() == 1
    assert Product.objects.get(id=product.id).quantity == 3
    assert IdempotencyKey.objects.get().order_id is not None


@pytest.mark.django_db
def test_same_key_with_other_payload_conflicts(client, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    create(client, user, {"items": [{"product_id": str(product.id), "quantity": 1}]}, "idem-2")

    r = create(client, user, {"items": [{"product_id": str(product.id), "quantity": 2}]}, "idem-2")

    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"
    assert Order.objects.count() == 1


@pytest.mark.django_db
def test_keys_are_scoped_per_user(client, make_user, make_product):
    ana = make_user()
    bob = make_user(email="bob@example.com")
    product = make_product(quantity=5)
    body = {"items": [{"product_id": str(product.id), "quantity": 1}]}

    assert create(client, ana, body, "shared").status_code == 201
    r = create(client, bob, body, "shared")

    assert r.status_code == 201
    assert not r.has_header("Idempotent-Replay")
    assert Order.objects.count() == 2


@pytest.mark.django_db
def test_business_failures_are_replayed(client, make_user, make_product):
    user = make_user()
    product = make_product(quantity=1)
    body = {"items": [{"product_id": str(product.id), "quantity": 3}]}

    first = create(client, user, body, "idem-3")
    Product.objects.filter(id=product.id).update(quantity=10)
    second = create(client, user, body, "idem-3")

    assert first.status_code == 422
    assert second.status_code == 422
    assert second["Idempotent-Replay"] == "true"
    assert second.json() == first.json()
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_invalid_requests_leave_the_key_open(client, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)

    r = create(client, user, {"items": []}, "idem-4")
    assert r.status_code == 400
    assert not IdempotencyKey.objects.exists()

    r = create(client, user, {"items": [{"product_id": str(product.id), "quantity": 1}]}, "idem-4")
    assert r.status_code == 201


@pytest.mark.django_db
def test_unfinished_key_reports_in_progress(client, make_user, make_product):
    user = make_user()
    product = make_product(quantity=5)
    body = {"items": [{"product_id": str(product.id), "quantity": 1}]}
    create(client, user, body, "idem-5")
    IdempotencyKey.objects.filter(key=f"{user.id}:idem-5").update(response_status=0)

    r = create(client, user, body, "idem-5")

    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_IN_PROGRESS"
