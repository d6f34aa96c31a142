"""Pydantic schemas for the payments API.

Card and billing address schemas are shared with the orders API (an order can
be charged while it is created). Amounts are in major units; the service
converts them to minor units before calling the gateway.
"""

import re
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .domain import BillingAddress, CardData

EXPIRATION_RE = re.compile(r"^(0[1-9]|1[0-2])/?(\d{2}|\d{4})$")


class CardIn(BaseModel):
    """Credit card as typed in the payment form.

    ``document`` and ``phone`` are optional overrides for the values on the
    buyer's profile.
    """

    number: str
    holder_name: str = Field(min_length=2, max_length=64)
    expiration: str
    cvv: str
    document: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("number")
    @classmethod
    def validate_number(cls, v: str) -> str:
        digits = re.sub(r"[\s-]", "", v)
        if not digits.isdigit() or not 13 <= len(digits) <= 19:
            raise ValueError("Invalid card number")
        return digits

    @field_validator("expiration")
    @classmethod
    def validate_expiration(cls, v: str) -> str:
        v2 = v.strip()
        if not EXPIRATION_RE.match(v2):
            raise ValueError("Expiration must be MMYY or MM/YY")
        return v2

    @field_validator("cvv")
    @classmethod
    def validate_cvv(cls, v: str) -> str:
        if not v.isdigit() or len(v) not in (3, 4):
            raise ValueError("Invalid CVV")
        return v

    def to_domain(self) -> CardData:
        return CardData(**self.model_dump())


class BillingAddressIn(BaseModel):
    country: str = Field(default="br", min_length=2, max_length=2)
    state: str = Field(min_length=2, max_length=32)
    city: str = Field(min_length=1)
    neighborhood: str = Field(min_length=1)
    street: str = Field(min_length=1)
    street_number: str = Field(min_length=1)
    zipcode: str = Field(min_length=5, max_length=10)
    complement: Optional[str] = None

    @field_validator("country")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        return v.lower()

    def to_domain(self) -> BillingAddress:
        return BillingAddress(**self.model_dump())



class ProcessPaymentDTO(BaseModel):
    order_id: UUID
    card: CardIn
    billing: BillingAddressIn


class AmountDTO(BaseModel):
    """Optional partial amount for capture/refund; None means the full charge."""

    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class BankAccountIn(BaseModel):
    holder_name: str = Field(min_length=2, max_length=30)
    holder_type: Literal["individual", "company"] = "individual"
    holder_document: str
    bank: str = Field(min_length=3, max_length=3)
    branch_number: str = Field(min_length=1, max_length=4)
    branch_check_digit: Optional[str] = Field(default=None, max_length=1)
    account_number: str = Field(min_length=1, max_length=13)
    account_check_digit: str = Field(min_length=1, max_length=2)
    type: Literal["checking", "savings"] = "checking"

    @field_validator("holder_document")
    @classmethod
    def digits_only(cls, v: str) -> str:
        digits = re.sub(r"\D", "", v)
        if len(digits) not in (11, 14):
            raise ValueError("Document must be a CPF (11 digits) or CNPJ (14 digits)")
        return digits


class RecipientCreateDTO(BaseModel):
    """Payout recipient registration."""

    name: str = Field(min_length=2, max_length=128)
    email: str = Field(min_length=3, max_length=64)
    document: str
    type: Literal["individual", "corporation"] = "individual"
    code: Optional[str] = Field(default=None, max_length=52)
    default_bank_account: BankAccountIn

    @field_validator("document")
    @classmethod
    def digits_only(cls, v: str) -> str:
        digits = re.sub(r"\D", "", v)
        if len(digits) not in (11, 14):
            raise ValueError("Document must be a CPF (11 digits) or CNPJ (14 digits)")
        return digits

    def to_payload(self) -> dict:
        """Gateway body for ``POST /recipients``."""
        payload = {
            "register_information": {
                "name": self.name,
                "email": self.email,
                "document": self.document,
                "type": self.type,
            },
            "default_bank_account": self.default_bank_account.model_dump(exclude_none=True),
        }
        if self.code:
            payload["code"] = self.code
        return payload
