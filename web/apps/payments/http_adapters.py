"""HTTP client for the payment gateway with retries and a circuit breaker.

This module implements ``PaymentGatewayPort`` over the gateway's REST API
using ``httpx``. It adds:

- Credential checks before any network call: the secret key must be set and
  must be a secret (``sk_``) key. Requests use HTTP Basic auth with the key
  as the username and an empty password.
- Request correlation: propagates ``X-Request-ID`` from the ContextVar set by
  the gateway middleware.
- A circuit breaker shared by all gateway calls, with HALF_OPEN probing after
  a timeout.
- A retry policy with exponential backoff for transport errors and 5xx.
  Charge creation carries an ``Idempotency-Key`` generated once per attempt
  so a retried POST can never charge twice.
- Translation of the gateway's JSON shapes: requests are built by
  ``build_order_payload`` and every answer goes through
  ``normalize_gateway_response`` or ``gateway_error_from_response``.
"""

import logging
import os
import sys
import threading
import time
import uuid
from typing import Any, List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import (
    ChargeRequest,
    CustomerType,
    GatewayTransaction,
    PaymentGatewayPort,
    SplitRule,
)
from .errors import (
    CustomerDocumentMissing,
    GatewayConfigurationError,
    GatewayRequestError,
    RecipientNotFound,
    TransactionNotFound,
)
from .normalization import gateway_error_from_response, normalize_gateway_response

logger = logging.getLogger(__name__)

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitOpenError(RuntimeError):
    """Raised when the breaker refuses a call."""


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                # allow only one concurrent probe
                if self._half_open_probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold exceeded."""
        with self._lock:
            self._failures += 1
            if self._failures >= self.fail_threshold and self._state != "OPEN":
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


_gateway_cb = CircuitBreaker(
    "payment-gateway",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {"Accept": "application/json"}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport exceptions or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _json_or_none(resp) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _digits(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def mask_key(key: str) -> str:
    """Shorten a secret key for logs: first 8 and last 4 characters."""
    if len(key) <= 12:
        return key[:3] + "***"
    return f"{key[:8]}...{key[-4:]}"


# ---------------- Wire format ---------------- #

def _phone_payload(phone: str) -> dict:
    digits = _digits(phone)
    if len(digits) > 11 and digits.startswith("55"):
        digits = digits[2:]
    return {"country_code": "55", "area_code": digits[:2], "number": digits[2:]}


def _split_payload(rules: List[SplitRule]) -> list[dict]:
    payload = []
    for rule in rules:
        if not (rule.recipient_id or "").strip():
            logger.warning("dropping split rule without recipient id")
            continue
        payload.append(
            {
                "type": "percentage",
                "amount": rule.percentage,
                "recipient_id": rule.recipient_id.strip(),
                "options": {
                    "charge_processing_fee": rule.charge_processing_fee,
                    "charge_remainder_fee": rule.charge_remainder_fee,
                    "liable": rule.liable,
                },
            }
        )
    return payload


def build_order_payload(request: ChargeRequest, statement_descriptor: str = "CHECKOUT") -> dict:
    """Translate a ``ChargeRequest`` into the gateway's order creation body.

    Amounts are integers in minor units; the card number and zip code are
    reduced to digits; split rules without a recipient are dropped.
    """
    customer = request.customer
    address = request.billing_address
    exp_month, exp_year = request.card.expiry_parts()
    document = _digits(customer.document)

    customer_payload: dict[str, Any] = {
        "code": customer.external_id,
        "name": customer.name,
        "email": customer.email,
        "type": customer.type.value if isinstance(customer.type, CustomerType) else customer.type,
        "document": document,
        "document_type": "CNPJ" if len(document) == 14 else "CPF",
        "phones": {},
    }
    if customer.phone_numbers:
        customer_payload["phones"]["mobile_phone"] = _phone_payload(customer.phone_numbers[0])

    billing_address = {
        "line_1": ", ".join(p for p in (address.street_number, address.street, address.neighborhood) if p),
        "zip_code": _digits(address.zipcode),
        "city": address.city,
        "state": address.state,
        "country": (address.country or customer.country).upper(),
    }
    if address.complement:
        billing_address["line_2"] = address.complement

    payment: dict[str, Any] = {
        "payment_method": "credit_card",
        "amount": request.amount_cents,
        "credit_card": {
            "installments": 1,
            "statement_descriptor": statement_descriptor[:13],
            "card": {
                "number": _digits(request.card.number),
                "holder_name": request.card.holder_name,
                "exp_month": exp_month,
                "exp_year": exp_year,
                "cvv": request.card.cvv,
                "billing_address": billing_address,
            },
        },
    }
    if request.split:
        split = _split_payload(request.split)
        if split:
            payment["split"] = split

    return {
        "code": request.code,
        "customer": customer_payload,
        "items": [
            {
                "code": item.code or item.id,
                "description": item.title,
                "amount": item.unit_price_cents,
                "quantity": item.quantity,
            }
            for item in request.items
        ],
        "payments": [payment],
        "metadata": {k: str(v) for k, v in (request.metadata or {}).items()},
    }


# ---------------- Gateway Adapter ---------------- #

class HttpPaymentGatewayClient(PaymentGatewayPort):
    """HTTP client for the payment gateway with retry and circuit breaker."""

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.PAYMENT_GATEWAY_SECRET_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.statement_descriptor = getattr(settings, "PAYMENT_STATEMENT_DESCRIPTOR", "CHECKOUT")

    def _auth(self) -> httpx.BasicAuth:
        """Validate the configured secret key and build the Basic auth.

        Raises:
            GatewayConfigurationError: If the key is missing or is not a
                secret ``sk_`` key (e.g. a public ``pk_`` key).
        """
        key = (self.secret_key or "").strip()
        if not key:
            raise GatewayConfigurationError(
                "PAYMENT_GATEWAY_SECRET_KEY is not configured; set a secret key (sk_test_* or sk_live_*)."
            )
        if not key.startswith("sk_"):
            raise GatewayConfigurationError(
                f"The gateway needs a secret key (sk_test_* or sk_live_*) but got {mask_key(key)}."
            )
        return httpx.BasicAuth(key, "")

    def _send(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Perform one logical gateway call with retries.

        Business mappings:
        - 2xx → decoded JSON body
        - 4xx → domain error from ``gateway_error_from_response``; not a
          circuit failure
        - transport errors / 5xx → retried, then raised

        Raises:
            CircuitOpenError: When the breaker refuses the call.
            httpx.RequestError: For network/transport errors after retries.
            GatewayError: For non-2xx answers.
        """
        auth = self._auth()
        max_retries, backoff = _retry_policy()
        if _is_test_mode():
            if max_retries < 1:
                max_retries = 1
            backoff = 0.0
        tries = 0

        state = _gateway_cb.before_call()
        extras = {"X-Circuit-State": state, "X-Retry-Count": "0"}
        if idempotency_key:
            extras["Idempotency-Key"] = idempotency_key
        headers = _request_headers(extras)
        url = f"{self.base_url}{path}"

        try:
            with httpx.Client(timeout=self.timeout, auth=auth) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, url, json=json, params=params, headers=headers)
                        if 200 <= resp.status_code < 300:
                            _gateway_cb.on_success()
                            return _json_or_none(resp) or {}
                        if not _should_retry(resp, None):
                            _gateway_cb.on_success()  # business outcome, not a circuit failure
                            raise gateway_error_from_response(resp.status_code, _json_or_none(resp))
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_retries or not _should_retry(resp, exc):
                        _gateway_cb.on_failure()
                        logger.error(
                            "gateway call failed",
                            extra={"method": method, "path": path, "tries": tries},
                        )
                        if exc:
                            raise exc
                        raise gateway_error_from_response(resp.status_code, _json_or_none(resp))

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))
        finally:
            _gateway_cb.on_finish()

    # ---- charges ----

    def create_charge(self, request: ChargeRequest) -> GatewayTransaction:
        """Create a credit card order at the gateway.

        Raises:
            GatewayConfigurationError: Bad or missing secret key.
            CustomerDocumentMissing: Individual customer without a document.
            GatewayError: Non-2xx answer (IP allow-list, auth, validation).
            httpx.RequestError: Transport failure after retries.
        """
        self._auth()
        if request.customer.type == CustomerType.INDIVIDUAL and not _digits(request.customer.document):
            raise CustomerDocumentMissing("A CPF is required to charge an individual customer.")

        payload = build_order_payload(request, self.statement_descriptor)
        logger.info(
            "creating gateway charge",
            extra={
                "code": request.code,
                "amount_cents": request.amount_cents,
                "items": len(request.items),
                "card_last_digits": request.card.last_digits,
                "split": bool(payload["payments"][0].get("split")),
            },
        )
        body = self._send("POST", "/orders", json=payload, idempotency_key=str(uuid.uuid4()))
        tx = normalize_gateway_response(body)
        logger.info(
            "gateway charge created",
            extra={"transaction_id": tx.id, "raw_status": tx.raw_status, "status": tx.canonical_status.value},
        )
        return tx

    # ---- charges (addressed by charge id, ``ch_...``) ----

    def _charge_call(
        self, method: str, charge_id: str, suffix: str = "", json: Optional[dict] = None
    ) -> GatewayTransaction:
        try:
            body = self._send(method, f"/charges/{charge_id}{suffix}", json=json)
        except GatewayRequestError as e:
            if e.status == 404:
                raise TransactionNotFound(f"Charge {charge_id} not found") from e
            raise
        return normalize_gateway_response(body)

    def get_transaction(self, charge_id: str) -> GatewayTransaction:
        return self._charge_call("GET", charge_id)

    def capture(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        """Capture an authorized charge, fully or partially."""
        body = {"amount": amount_cents} if amount_cents else {}
        return self._charge_call("POST", charge_id, "/capture", json=body)

    def refund(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        """Refund (cancel) a charge, fully or partially."""
        body = {"amount": amount_cents} if amount_cents else None
        return self._charge_call("DELETE", charge_id, json=body)

    # ---- recipients ----

    def create_recipient(self, payload: dict) -> dict:
        return self._send("POST", "/recipients", json=payload)

    def get_recipient(self, recipient_id: str) -> dict:
        try:
            return self._send("GET", f"/recipients/{recipient_id}")
        except GatewayRequestError as e:
            if e.status == 404:
                raise RecipientNotFound(f"Recipient {recipient_id} not found") from e
            raise

    def list_recipients(self, page: int = 1, size: int = 20) -> dict:
        return self._send("GET", "/recipients", params={"page": page, "size": size})
