import base64
import os

# in-memory database, set before the sandbox modules create their engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from main import app
from repo import Base, engine, init_db


@pytest.fixture
def sandbox():
    init_db()
    with TestClient(app) as client:
        token = base64.b64encode(b"sk_test_sandbox:").decode()
        client.headers["Authorization"] = f"Basic {token}"
        yield client
    Base.metadata.drop_all(engine)


@pytest.fixture
def order_payload():
    def _make(number="4000000000000010", amount=None, code="order-1", split=None):
        payment = {
            "payment_method": "credit_card",
            "credit_card": {
                "installments": 1,
                "statement_descriptor": "CHECKOUT",
                "card": {
                    "number": number,
                    "holder_name": "ANA SOUZA",
                    "exp_month": 12,
                    "exp_year": 30,
                    "cvv": "123",
                    "billing_address": {
                        "line_1": "100, Rua dos Pinheiros, Pinheiros",
                        "zip_code": "05422000",
                        "city": "Sao Paulo",
                        "state": "SP",
                        "country": "BR",
                    },
                },
            },
        }
        if amount is not None:
            payment["amount"] = amount
        if split is not None:
            payment["split"] = split
        return {
            "code": code,
            "customer": {
                "name": "Ana Souza",
                "email": "ana@example.com",
                "type": "individual",
                "document": "12345678909",
                "document_type": "CPF",
                "phones": {"mobile_phone": {"country_code": "55", "area_code": "11", "number": "987654321"}},
            },
            "items": [{"code": "WHEY-1", "description": "Whey protein", "amount": 1099, "quantity": 3}],
            "payments": [payment],
            "metadata": {"order_id": code},
        }

    return _make
