from decimal import Decimal

import pytest

from apps.payments.http_adapters import _gateway_cb
from apps.payments.providers import reset_payment_gateway

PAID_CARD = "4000000000000010"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    """Run every test against the in-process gateway stub with a closed circuit."""
    settings.USE_HTTP_ADAPTERS = False
    reset_payment_gateway()
    _gateway_cb.on_success()
    yield
    reset_payment_gateway()
    _gateway_cb.on_success()


@pytest.fixture
def make_user(db):
    from apps.accounts.models import Contact, Person, User

    def _make(email="ana@example.com", phone="(11) 98765-4321", document="123.456.789-09", **person):
        p = Person.objects.create(
            first_name=person.get("first_name", "Ana"),
            last_name=person.get("last_name", "Souza"),
            national_registration=document,
        )
        if email:
            Contact.objects.create(person=p, type=Contact.Type.EMAIL, value=email)
        if phone:
            Contact.objects.create(person=p, type=Contact.Type.PHONE, value=phone)
        return User.objects.create(person=p, auth_subject=f"auth0|{p.id}")

    return _make


@pytest.fixture
def make_product(db):
    from apps.catalog.models import Product

    def _make(price="10.00", quantity=10, **kw):
        return Product.objects.create(
            name=kw.pop("name", "Whey protein"),
            sku=kw.pop("sku", "WHEY-1"),
            price=Decimal(price) if price is not None else None,
            quantity=quantity,
            **kw,
        )

    return _make


@pytest.fixture
def card_payload():
    return {
        "number": PAID_CARD,
        "holder_name": "ANA SOUZA",
        "expiration": "12/30",
        "cvv": "123",
    }


@pytest.fixture
def billing_payload():
    return {
        "country": "br",
        "state": "SP",
        "city": "Sao Paulo",
        "neighborhood": "Pinheiros",
        "street": "Rua dos Pinheiros",
        "street_number": "100",
        "zipcode": "05422-000",
    }
