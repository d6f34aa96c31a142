"""In-process stub adapter for the payment gateway port.

The stub implements ``PaymentGatewayPort`` without any network calls. It is
intended for unit tests and local development where deterministic behavior
is useful and the real gateway is not reachable.

Outcomes are driven by the card number, mirroring the gateway's test cards:
numbers ending in ``0002`` are refused, numbers ending in ``0004`` stay
processing, anything else is paid.
"""

import uuid
from typing import Optional

from .domain import ChargeRequest, CustomerType, GatewayTransaction, PaymentGatewayPort
from .errors import CustomerDocumentMissing, RecipientNotFound, TransactionNotFound
from .normalization import normalize_gateway_response

REFUSED_SUFFIX = "0002"
PROCESSING_SUFFIX = "0004"


class PaymentGatewayStub(PaymentGatewayPort):
    """Stub implementation of ``PaymentGatewayPort`` keeping state in memory."""

    def __init__(self):
        self._charges: dict[str, dict] = {}
        self._recipients: dict[str, dict] = {}

    def _outcome(self, card_number: str) -> str:
        digits = "".join(ch for ch in card_number if ch.isdigit())
        if digits.endswith(REFUSED_SUFFIX):
            return "refused"
        if digits.endswith(PROCESSING_SUFFIX):
            return "processing"
        return "paid"

    def create_charge(self, request: ChargeRequest) -> GatewayTransaction:
        """Charge a mock payment.

        Returns:
            GatewayTransaction: Normalized from a gateway-shaped body, so the
            stub exercises the same normalization as the HTTP client.
        """
        if request.customer.type == CustomerType.INDIVIDUAL and not request.customer.document:
            raise CustomerDocumentMissing("A CPF is required to charge an individual customer.")

        status = self._outcome(request.card.number)
        tran_id = f"tran_{uuid.uuid4().hex[:16]}"
        charge = {
            "id": f"ch_{uuid.uuid4().hex[:16]}",
            "amount": request.amount_cents,
            "status": status,
            "last_transaction": {"id": tran_id, "status": status},
        }
        self._charges[charge["id"]] = charge
        body = {
            "id": f"or_{uuid.uuid4().hex[:16]}",
            "code": request.code,
            "amount": request.amount_cents,
            "status": status,
            "charges": [charge],
        }
        return normalize_gateway_response(body)

    def _charge(self, charge_id: str) -> dict:
        try:
            return self._charges[charge_id]
        except KeyError:
            raise TransactionNotFound(f"Charge {charge_id} not found") from None

    def get_transaction(self, charge_id: str) -> GatewayTransaction:
        return normalize_gateway_response(self._charge(charge_id))

    def capture(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        charge = self._charge(charge_id)
        charge["status"] = "paid"
        charge["last_transaction"]["status"] = "paid"
        if amount_cents:
            charge["amount"] = amount_cents
        return normalize_gateway_response(charge)

    def refund(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        """Cancel a charge; a partial amount leaves the charge status unchanged."""
        charge = self._charge(charge_id)
        canceled = charge.get("canceled_amount", 0) + (amount_cents or charge["amount"])
        charge["canceled_amount"] = min(canceled, charge["amount"])
        if charge["canceled_amount"] >= charge["amount"]:
            charge["status"] = "canceled"
            charge["last_transaction"]["status"] = "canceled"
        return normalize_gateway_response(charge)

    def create_recipient(self, payload: dict) -> dict:
        rid = f"rp_{uuid.uuid4().hex[:16]}"
        info = payload.get("register_information") or {}
        recipient = {
            "id": rid,
            "name": info.get("name") or info.get("company_name"),
            "email": info.get("email"),
            "document": info.get("document"),
            "type": info.get("type", "individual"),
            "status": "active",
            "code": payload.get("code"),
        }
        self._recipients[rid] = recipient
        return recipient

    def get_recipient(self, recipient_id: str) -> dict:
        try:
            return self._recipients[recipient_id]
        except KeyError:
            raise RecipientNotFound(f"Recipient {recipient_id} not found") from None

    def list_recipients(self, page: int = 1, size: int = 20) -> dict:
        data = list(self._recipients.values())
        start = (page - 1) * size
        return {"data": data[start:start + size], "paging": {"total": len(data)}}
