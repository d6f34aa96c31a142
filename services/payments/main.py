"""Payment gateway sandbox built with FastAPI.

Emulates the subset of the gateway's ``/core/v5`` REST API the web app
calls, so the HTTP adapter can be exercised end to end
(``USE_HTTP_ADAPTERS=true``, ``PAYMENT_GATEWAY_BASE_URL=http://localhost:9001/core/v5``):

- ``POST /core/v5/orders``: credit card order with one charge
- ``GET /core/v5/charges/{id}``, ``POST .../capture``, ``DELETE`` (refund),
  addressed by charge id only; a partial refund keeps the charge status
- ``POST/GET /core/v5/recipients``, ``GET /core/v5/recipients/{id}``

Requests must use HTTP Basic auth with a secret key (``sk_...``) as the
username. Outcomes follow the card number: ending in ``0002`` is refused,
``0004`` stays processing, anything else is paid. Setting
``SANDBOX_ALLOWED_IPS`` (comma separated) rejects other client addresses the
way the real gateway's IP allow-list does.
"""

import base64
import logging
import os
import time
import uuid
from typing import Annotated, Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from repo import (
    GatewayRepo,
    IdempotencyKey,
    canonical_hash,
    charge_to_dict,
    engine,
    get_session,
    init_db,
    order_to_dict,
    recipient_to_dict,
)

REFUSED_SUFFIX = "0002"
PROCESSING_SUFFIX = "0004"

app = FastAPI(title="Payment Gateway Sandbox")

logger = logging.getLogger("gateway_sandbox")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # brief wait until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


# ---------------- errors ---------------- #

def gateway_error(status_code: int, message: str, errors: Optional[Any] = None) -> JSONResponse:
    body: dict[str, Any] = {"message": message}
    if errors is not None:
        body["errors"] = errors
    return JSONResponse(body, status_code=status_code)


class GatewayHTTPError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[Any] = None):
        self.status_code = status_code
        self.message = message
        self.errors = errors


@app.exception_handler(GatewayHTTPError)
async def _gateway_http_error(_request: Request, exc: GatewayHTTPError):
    return gateway_error(exc.status_code, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError):
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field = ".".join(str(p) for p in err["loc"] if p != "body") or "request"
        errors.setdefault(field, []).append(err["msg"])
    return gateway_error(422, "The request is invalid.", errors)


# ---------------- auth ---------------- #

def _allowed_ips() -> set[str]:
    raw = os.getenv("SANDBOX_ALLOWED_IPS", "")
    return {ip.strip() for ip in raw.split(",") if ip.strip()}


def require_secret_key(request: Request, authorization: Annotated[Optional[str], Header()] = None) -> str:
    """Check Basic auth carries a secret key and the caller IP is allowed."""
    key = ""
    if authorization and authorization.lower().startswith("basic "):
        try:
            decoded = base64.b64decode(authorization[6:]).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            decoded = ""
        key = decoded.split(":", 1)[0]
    if not key.startswith("sk_"):
        raise GatewayHTTPError(401, "Authorization has been denied for this request.")

    allowed = _allowed_ips()
    client_ip = request.client.host if request.client else ""
    if allowed and client_ip not in allowed:
        raise GatewayHTTPError(
            401,
            "Authorization has been denied for this request.",
            [
                {
                    "type": "action_forbidden",
                    "message": f"IP {client_ip} not allowed for this key",
                    "parameter_name": "ip",
                }
            ],
        )
    return key


Authorized = Annotated[str, Depends(require_secret_key)]


# ---------------- schemas ---------------- #

class PhoneIn(BaseModel):
    country_code: str
    area_code: str
    number: str


class CustomerIn(BaseModel):
    code: Optional[str] = None
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    type: str = "individual"
    document: str = Field(min_length=11, max_length=14)
    document_type: str = "CPF"
    phones: dict[str, PhoneIn] = Field(default_factory=dict)


class ItemIn(BaseModel):
    code: Optional[str] = None
    description: str
    amount: int = Field(ge=0)
    quantity: int = Field(gt=0)


class BillingAddressIn(BaseModel):
    line_1: str
    line_2: Optional[str] = None
    zip_code: str
    city: str
    state: str
    country: str


class CardIn(BaseModel):
    number: str = Field(min_length=13, max_length=19)
    holder_name: str
    exp_month: int = Field(ge=1, le=12)
    exp_year: int
    cvv: str = Field(min_length=3, max_length=4)
    billing_address: BillingAddressIn


class CreditCardIn(BaseModel):
    installments: int = Field(default=1, ge=1)
    statement_descriptor: Optional[str] = Field(default=None, max_length=13)
    card: CardIn


class SplitIn(BaseModel):
    recipient_id: str
    amount: float = Field(gt=0, le=100)
    type: str = "percentage"
    options: dict[str, Any] = Field(default_factory=dict)


class PaymentIn(BaseModel):
    payment_method: str
    amount: Optional[int] = Field(default=None, gt=0)
    credit_card: CreditCardIn
    split: Optional[list[SplitIn]] = None


class OrderIn(BaseModel):
    code: Optional[str] = None
    customer: CustomerIn
    items: list[ItemIn] = Field(min_length=1)
    payments: list[PaymentIn] = Field(min_length=1, max_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)


class AmountIn(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0)


class BankAccountIn(BaseModel):
    holder_name: str
    holder_type: str = "individual"
    holder_document: str
    bank: str
    branch_number: str
    branch_check_digit: Optional[str] = None
    account_number: str
    account_check_digit: str
    type: str = "checking"


class RegisterInformationIn(BaseModel):
    name: str
    email: str
    document: str = Field(min_length=11, max_length=14)
    type: str = "individual"


class RecipientIn(BaseModel):
    code: Optional[str] = None
    register_information: RegisterInformationIn
    default_bank_account: BankAccountIn


# ---------------- outcomes ---------------- #

def card_outcome(number: str) -> tuple[str, str, str]:
    """Return ``(charge_status, transaction_status, acquirer_message)``."""
    if number.endswith(REFUSED_SUFFIX):
        return "failed", "refused", "Transaction refused by the issuer"
    if number.endswith(PROCESSING_SUFFIX):
        return "pending", "processing", "Transaction under review"
    return "paid", "paid", "Transaction approved"


# ---------------- endpoints ---------------- #

@app.get("/health")
def health():
    return {"ok": True}


@app.post("/core/v5/orders")
def create_order(
    req: OrderIn,
    _key: Authorized,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Create an order charged on a credit card.

    With an ``Idempotency-Key`` the first answer is stored and replayed for
    retries with the same body; the same key with another body is a 409.
    """
    payment = req.payments[0]
    if payment.payment_method != "credit_card":
        raise GatewayHTTPError(422, "The request is invalid.", {"payments[0].payment_method": ["Only credit_card is supported"]})

    payload_hash = canonical_hash(req.model_dump(mode="json"))
    repo = GatewayRepo()

    with get_session() as s:
        if idempotency_key:
            try:
                s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
                s.commit()
            except IntegrityError:
                s.rollback()
                rec = s.execute(
                    select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key)
                ).scalars().first()
                if rec is None:
                    raise GatewayHTTPError(500, "Idempotency lookup failed")
                if rec.request_hash != payload_hash:
                    raise GatewayHTTPError(409, "Idempotency-Key already used with a different request")
                if not rec.status_code:
                    raise GatewayHTTPError(409, "A request with this Idempotency-Key is still being processed")
                return JSONResponse(rec.response_body, status_code=rec.status_code)

        items_total = sum(i.amount * i.quantity for i in req.items)
        amount = payment.amount or items_total
        number = "".join(ch for ch in payment.credit_card.card.number if ch.isdigit())
        charge_status, transaction_status, message = card_outcome(number)

        order = repo.create_order(
            s,
            code=req.code,
            amount=amount,
            customer=req.customer.model_dump(mode="json"),
            items=[i.model_dump(mode="json") for i in req.items],
            metadata=req.metadata,
            charge_status=charge_status,
            transaction_status=transaction_status,
            acquirer_message=message,
            card_last_digits=number[-4:],
            split=[sp.model_dump(mode="json") for sp in payment.split] if payment.split else None,
        )
        body = order_to_dict(order)

        if idempotency_key:
            rec = s.get(IdempotencyKey, idempotency_key)
            rec.status_code = 200
            rec.response_body = body
        s.commit()

    logger.info(
        "order created",
        extra={"order_id": body["id"], "code": req.code, "status": charge_status, "amount": amount},
    )
    return body


def _load_charge(s, charge_id: str):
    charge = GatewayRepo().find_charge(s, charge_id)
    if charge is None:
        raise GatewayHTTPError(404, f"Charge not found: {charge_id}")
    return charge


@app.get("/core/v5/charges/{charge_id}")
def get_charge(charge_id: str, _key: Authorized):
    with get_session() as s:
        return charge_to_dict(_load_charge(s, charge_id))


@app.post("/core/v5/charges/{charge_id}/capture")
def capture_charge(charge_id: str, _key: Authorized, req: Optional[AmountIn] = None):
    with get_session() as s:
        charge = _load_charge(s, charge_id)
        if charge.status not in ("pending", "paid"):
            raise GatewayHTTPError(422, f"Charge {charge.id} cannot be captured from status {charge.status}")
        GatewayRepo().set_charge_status(s, charge, "paid", "paid", req.amount if req else None)
        s.commit()
        body = charge_to_dict(charge)
    logger.info("charge captured", extra={"charge_id": charge_id})
    return body


@app.delete("/core/v5/charges/{charge_id}")
def cancel_charge(charge_id: str, _key: Authorized, req: Optional[AmountIn] = None):
    with get_session() as s:
        charge = _load_charge(s, charge_id)
        if charge.status == "canceled":
            raise GatewayHTTPError(422, f"Charge {charge.id} is already canceled")
        GatewayRepo().cancel_charge(s, charge, req.amount if req else None)
        s.commit()
        body = charge_to_dict(charge)
    logger.info("charge canceled", extra={"charge_id": charge_id, "amount": req.amount if req else None})
    return body


@app.post("/core/v5/recipients")
def create_recipient(req: RecipientIn, _key: Authorized):
    info = req.register_information
    with get_session() as s:
        recipient = GatewayRepo().create_recipient(
            s,
            code=req.code,
            name=info.name,
            email=info.email,
            document=info.document,
            type=info.type,
            default_bank_account=req.default_bank_account.model_dump(mode="json"),
        )
        s.commit()
        return recipient_to_dict(recipient)


@app.get("/core/v5/recipients")
def list_recipients(_key: Authorized, page: int = 1, size: int = 20):
    page, size = max(1, page), min(max(1, size), 100)
    with get_session() as s:
        rows, total = GatewayRepo().list_recipients(s, page, size)
        return {"data": [recipient_to_dict(r) for r in rows], "paging": {"total": total}}


@app.get("/core/v5/recipients/{recipient_id}")
def get_recipient(recipient_id: str, _key: Authorized):
    with get_session() as s:
        recipient = GatewayRepo().get_recipient(s, recipient_id)
        if recipient is None:
            raise GatewayHTTPError(404, f"Recipient not found: {recipient_id}")
        return recipient_to_dict(recipient)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
