"""Payment domain DTOs and the gateway port.

This module contains the dataclasses passed to the payment gateway adapter
(card, customer, billing address, line items, split rules), the normalized
``GatewayTransaction`` record returned by every adapter call, and the
``PaymentGatewayPort`` protocol the orders service depends on.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol


# ---- Enums ----
class CanonicalStatus(str, Enum):
    """Normalized payment status the orchestrator reasons about."""

    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class CustomerType(str, Enum):
    INDIVIDUAL = "individual"
    CORPORATION = "corporation"


# ---- DTOs ----
@dataclass(frozen=True)
class CardData:
    """Credit card as typed by the buyer.

    Attributes:
        number: Card number; spaces are stripped before sending.
        holder_name: Name printed on the card.
        expiration: Expiry as ``MMYY`` or ``MM/YY``.
        cvv: Card security code.
        document: Optional CPF/CNPJ typed in the payment form.
        phone: Optional phone typed in the payment form.
    """

    number: str
    holder_name: str
    expiration: str
    cvv: str
    document: Optional[str] = None
    phone: Optional[str] = None

    @property
    def last_digits(self) -> str:
        digits = "".join(ch for ch in self.number if ch.isdigit())
        return digits[-4:]

    def expiry_parts(self) -> tuple[int, int]:
        """Return ``(month, year)`` parsed from the expiration string."""
        raw = "".join(ch for ch in self.expiration if ch.isdigit())
        if len(raw) not in (4, 6):
            raise ValueError("Card expiration must be MMYY or MMYYYY")
        return int(raw[:2]), int(raw[2:])


@dataclass(frozen=True)
class BillingAddress:
    country: str
    state: str
    city: str
    neighborhood: str
    street: str
    street_number: str
    zipcode: str
    complement: Optional[str] = None


@dataclass(frozen=True)
class CustomerData:
    """Buyer identity sent to the gateway.

    ``document`` holds digits only; ``phone_numbers`` hold digits only with
    the area code first.
    """

    external_id: str
    name: str
    email: str
    type: CustomerType = CustomerType.INDIVIDUAL
    country: str = "br"
    document: Optional[str] = None
    phone_numbers: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransactionItem:
    """Gateway line item; ``unit_price_cents`` is in minor units."""

    id: str
    title: str
    unit_price_cents: int
    quantity: int
    code: Optional[str] = None


@dataclass(frozen=True)
class SplitRule:
    """Percentage of a payment routed to a payout recipient."""

    recipient_id: str
    percentage: float
    charge_processing_fee: bool = False
    charge_remainder_fee: bool = False
    liable: bool = False


@dataclass(frozen=True)
class ChargeRequest:
    """Everything needed to create a credit card charge.

    Attributes:
        code: Our reference for the charge (the order id); also used to
            derive the idempotency key.
        amount_cents: Total to charge in minor units.
    """

    code: str
    amount_cents: int
    card: CardData
    customer: CustomerData
    billing_address: BillingAddress
    items: List[TransactionItem]
    metadata: dict = field(default_factory=dict)
    split: Optional[List[SplitRule]] = None


@dataclass(frozen=True)
class GatewayTransaction:
    """Normalized result of a gateway call.

    Attributes:
        id: Most specific reference found (transaction, then charge, then
            order id).
        canonical_status: Status mapped into ``CanonicalStatus``.
        raw_status: Status string exactly as the gateway sent it.
        charge_id: Charge reference when present.
        amount_cents: Amount reported by the gateway, if any.
        message: Acquirer/gateway message, useful when declined.
        raw: The decoded response body.
    """

    id: Optional[str]
    canonical_status: CanonicalStatus
    raw_status: Optional[str]
    charge_id: Optional[str] = None
    amount_cents: Optional[int] = None
    message: Optional[str] = None
    raw: dict = field(default_factory=dict)


# ---- Ports (DIP) ----
class PaymentGatewayPort(Protocol):
    """Port describing the payment gateway operations used by the app."""

    def create_charge(self, request: ChargeRequest) -> GatewayTransaction:
        raise NotImplementedError()

    def get_transaction(self, charge_id: str) -> GatewayTransaction:
        raise NotImplementedError()

    def capture(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        raise NotImplementedError()

    def refund(self, charge_id: str, amount_cents: Optional[int] = None) -> GatewayTransaction:
        raise NotImplementedError()

    def create_recipient(self, payload: dict) -> dict[str, Any]:
        raise NotImplementedError()

    def get_recipient(self, recipient_id: str) -> dict[str, Any]:
        raise NotImplementedError()

    def list_recipients(self, page: int = 1, size: int = 20) -> dict[str, Any]:
        raise NotImplementedError()
