"""Tests for gateway response normalization and error translation."""

import pytest

from apps.payments.domain import CanonicalStatus
from apps.payments.errors import (
    GatewayAuthenticationError,
    GatewayIpNotAllowedError,
    GatewayRequestError,
)
from apps.payments.normalization import (
    gateway_error_from_response,
    map_status,
    normalize_gateway_response,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("paid", CanonicalStatus.PAID),
        ("authorized", CanonicalStatus.PAID),
        ("success", CanonicalStatus.PAID),
        ("PAID", CanonicalStatus.PAID),
        ("processing", CanonicalStatus.PENDING),
        ("waiting_payment", CanonicalStatus.PENDING),
        ("pending", CanonicalStatus.PENDING),
        ("refused", CanonicalStatus.FAILED),
        ("canceled", CanonicalStatus.FAILED),
        ("failed", CanonicalStatus.FAILED),
    ],
)
def test_map_status_known_values(raw, expected):
    assert map_status(raw) == expected


@pytest.mark.parametrize("raw", ["captured", "chargedback", "", None, "weird"])
def test_unknown_statuses_fail_closed(raw):
    assert map_status(raw) == CanonicalStatus.FAILED


def test_order_with_charges_list_uses_last_transaction():
    body = {
        "id": "or_1",
        "status": "pending",
        "charges": [
            {
                "id": "ch_1",
                "amount": 3297,
                "status": "pending",
                "last_transaction": {"id": "tran_1", "status": "paid"},
            }
        ],
    }
    tx = normalize_gateway_response(body)
    assert tx.id == "tran_1"
    assert tx.charge_id == "ch_1"
    assert tx.canonical_status == CanonicalStatus.PAID
    assert tx.raw_status == "paid"
    assert tx.amount_cents == 3297


def test_charge_without_transaction_falls_back_to_charge_id_and_status():
    tx = normalize_gateway_response({"id": "or_2", "charge": {"id": "ch_2", "status": "refused"}})
    assert tx.id == "ch_2"
    assert tx.canonical_status == CanonicalStatus.FAILED


def test_flat_legacy_transaction():
    tx = normalize_gateway_response({"status": "paid", "id": "trans_1"})
    assert tx.id == "trans_1"
    assert tx.canonical_status == CanonicalStatus.PAID


def test_order_without_settlement_information_is_pending():
    tx = normalize_gateway_response({"id": "or_3", "amount": 1000})
    assert tx.id == "or_3"
    assert tx.canonical_status == CanonicalStatus.PENDING
    assert tx.raw_status is None


@pytest.mark.parametrize("raw", ["chargedback", "open", "with_error"])
def test_flat_unknown_status_fails_closed(raw):
    tx = normalize_gateway_response({"id": "tran_9", "status": raw})
    assert tx.id == "tran_9"
    assert tx.canonical_status == CanonicalStatus.FAILED
    assert tx.raw_status == raw


def test_decline_message_is_extracted():
    tx = normalize_gateway_response(
        {
            "charges": [
                {
                    "id": "ch_9",
                    "status": "failed",
                    "last_transaction": {
                        "id": "tran_9",
                        "status": "refused",
                        "acquirer_message": "Insufficient funds",
                    },
                }
            ]
        }
    )
    assert tx.canonical_status == CanonicalStatus.FAILED
    assert tx.message == "Insufficient funds"


def test_ip_allow_list_rejection_is_recognized():
    err = gateway_error_from_response(
        401,
        {"errors": [{"type": "action_forbidden", "message": "IP 10.0.0.1 not allowed"}]},
    )
    assert isinstance(err, GatewayIpNotAllowedError)

    err = gateway_error_from_response(403, {"errors": {"ip": ["not allowed"]}})
    assert isinstance(err, GatewayIpNotAllowedError)


def test_other_401_is_an_authentication_error():
    err = gateway_error_from_response(401, {"message": "Authorization has been denied for this request."})
    assert isinstance(err, GatewayAuthenticationError)


def test_validation_errors_are_joined():
    err = gateway_error_from_response(
        422,
        {
            "message": "The request is invalid.",
            "errors": {"order.customer.document": ["invalid document"], "order.items": ["required"]},
        },
    )
    assert isinstance(err, GatewayRequestError)
    assert err.status == 422
    assert err.message == "Gateway error: invalid document, required"
