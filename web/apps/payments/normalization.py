"""Interpretation of raw payment gateway responses.

The gateway answers with an ``order`` object that may carry a ``charge``
(or a ``charges`` list) which may carry a ``last_transaction``. Older API
versions answer with a flat transaction. Status vocabularies differ between
versions too. Everything that probes those shapes lives here so the rest of
the application only ever sees a ``GatewayTransaction``.
"""

import logging
import re
from typing import Any, Optional

from .domain import CanonicalStatus, GatewayTransaction
from .errors import GatewayAuthenticationError, GatewayIpNotAllowedError, GatewayRequestError

logger = logging.getLogger(__name__)

PAID_STATUSES = frozenset({"paid", "authorized", "success"})
FAILED_STATUSES = frozenset({"refused", "failed", "canceled"})
PENDING_STATUSES = frozenset({"processing", "pending", "waiting_payment"})

_IP_WORD = re.compile(r"\bip\b", re.IGNORECASE)


def map_status(raw_status: Optional[str]) -> CanonicalStatus:
    """Map a raw gateway status into a ``CanonicalStatus``.

    Unknown values (including None) fail closed: they map to ``failed`` and
    are logged, never defaulted to ``paid``.
    """
    value = (raw_status or "").strip().lower()
    if value in PAID_STATUSES:
        return CanonicalStatus.PAID
    if value in PENDING_STATUSES:
        return CanonicalStatus.PENDING
    if value not in FAILED_STATUSES:
        logger.warning("unknown gateway status", extra={"raw_status": raw_status})
    return CanonicalStatus.FAILED


def _as_dict(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) and value else None


def _extract_charge(order: dict) -> Optional[dict]:
    charge = _as_dict(order.get("charge"))
    if charge:
        return charge
    charges = order.get("charges")
    if isinstance(charges, list) and charges:
        return _as_dict(charges[0])
    return None


def _extract_message(*objs: Optional[dict]) -> Optional[str]:
    for obj in objs:
        if not obj:
            continue
        gateway_response = _as_dict(obj.get("gateway_response")) or {}
        for candidate in (
            obj.get("acquirer_message"),
            obj.get("message"),
            gateway_response.get("message"),
            gateway_response.get("code"),
        ):
            if candidate:
                return str(candidate)
    return None


def _to_str(value: Any) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def normalize_gateway_response(body: Optional[dict]) -> GatewayTransaction:
    """Collapse any gateway order/charge/transaction shape into one record.

    Probing order, most specific first:
        id:     last_transaction.id -> charge.id -> order.id
        status: last_transaction.status -> charge.status -> order.status

    When neither a charge nor a transaction is present, a flat body with a
    status is a legacy transaction and its status is mapped like any other
    (unknown values fail closed). A body without any status is an order
    accepted but not settled yet, so the status is ``pending``.

    Args:
        body: Decoded JSON body returned by the gateway.

    Returns:
        GatewayTransaction: The normalized record.
    """
    order = body if isinstance(body, dict) else {}
    charge = _extract_charge(order)
    transaction = _as_dict((charge or {}).get("last_transaction")) or _as_dict(
        order.get("last_transaction")
    )

    ids = (
        (transaction or {}).get("id"),
        (charge or {}).get("id"),
        order.get("id"),
    )
    tx_id = next((_to_str(v) for v in ids if _to_str(v)), None)

    if transaction is None and charge is None:
        raw_status = _to_str(order.get("status"))
        if raw_status is None:
            # order accepted, no settlement information yet
            canonical = CanonicalStatus.PENDING
        else:
            # flat legacy transaction shape
            canonical = map_status(raw_status)
    else:
        statuses = (
            (transaction or {}).get("status"),
            (charge or {}).get("status"),
            order.get("status"),
        )
        raw_status = next((_to_str(v) for v in statuses if _to_str(v)), None)
        canonical = map_status(raw_status)

    amount = (charge or {}).get("amount", order.get("amount"))
    return GatewayTransaction(
        id=tx_id,
        canonical_status=canonical,
        raw_status=raw_status,
        charge_id=_to_str((charge or {}).get("id")),
        amount_cents=int(amount) if isinstance(amount, (int, float)) else None,
        message=_extract_message(transaction, charge, order),
        raw=order,
    )


def _error_entries(body: Any) -> list[dict]:
    """Flatten the gateway ``errors`` structure into ``{...}`` entries."""
    if not isinstance(body, dict):
        return []
    errors = body.get("errors")
    if isinstance(errors, list):
        return [e if isinstance(e, dict) else {"message": str(e)} for e in errors]
    if isinstance(errors, dict):
        entries = []
        for parameter, messages in errors.items():
            if not isinstance(messages, list):
                messages = [messages]
            for msg in messages:
                entries.append({"parameter_name": parameter, "message": str(msg)})
        return entries
    return []


def _is_ip_error(entry: dict) -> bool:
    if entry.get("parameter_name") == "ip":
        return True
    message = str(entry.get("message") or "")
    return entry.get("type") == "action_forbidden" and bool(_IP_WORD.search(message))


def gateway_error_from_response(status_code: int, body: Any) -> Exception:
    """Translate a non-2xx gateway answer into a domain error.

    Args:
        status_code: HTTP status of the gateway response.
        body: Decoded JSON body, or None when the body was not JSON.

    Returns:
        Exception: ``GatewayIpNotAllowedError`` for the IP allow-list
        rejection, ``GatewayAuthenticationError`` for other 401s and
        ``GatewayRequestError`` (all messages joined) otherwise.
    """
    entries = _error_entries(body)

    if any(_is_ip_error(e) for e in entries):
        return GatewayIpNotAllowedError(
            "The gateway refused the request because this server's IP address is not "
            "allow-listed. Add the outbound IPs to the API key's allowed list in the "
            "gateway dashboard or disable the IP restriction for test keys."
        )

    if status_code == 401:
        return GatewayAuthenticationError(
            "The gateway rejected the credentials (401). Check that "
            "PAYMENT_GATEWAY_SECRET_KEY holds an active secret key (sk_test_* or sk_live_*)."
        )

    messages = [str(e.get("message")) for e in entries if e.get("message")]
    if not messages and isinstance(body, dict) and body.get("message"):
        messages = [str(body["message"])]
    text = ", ".join(messages) if messages else f"Gateway answered HTTP {status_code}"
    return GatewayRequestError(f"Gateway error: {text}", status=status_code)
