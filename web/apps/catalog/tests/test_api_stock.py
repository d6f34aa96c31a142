import uuid

import pytest

STOCK_URL = "/api/catalog/products/{pid}/stock/"


@pytest.mark.django_db
def test_patch_stock_subtract_clamps_at_zero(client, make_product):
    p = make_product(quantity=3)
    r = client.patch(
        STOCK_URL.format(pid=p.id),
        data={"quantity": 10, "operation": "subtract"},
        content_type="application/json",
        HTTP_X_USER_ID=str(uuid.uuid4()),
    )
    assert r.status_code == 200
    assert r.json() == {"product_id": str(p.id), "quantity": 0, "stock_tracked": True}


@pytest.mark.django_db
def test_patch_stock_errors(client, make_product):
    headers = {"HTTP_X_USER_ID": str(uuid.uuid4())}
    r = client.patch(
        STOCK_URL.format(pid=uuid.uuid4()),
        data={"quantity": 1},
        content_type="application/json",
        **headers,
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "PRODUCT_NOT_FOUND"

    p = make_product()
    r = client.patch(
        STOCK_URL.format(pid=p.id),
        data={"quantity": -1},
        content_type="application/json",
        **headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"

    r = client.patch(STOCK_URL.format(pid=p.id), data={"quantity": 1}, content_type="application/json")
    assert r.status_code == 401
