"""Ordered resolvers for customer fields required by the gateway.

Each resolver walks its candidates in priority order (value typed in the
payment form first, value on the user's profile second) and returns the
first one that passes validation. Values are reduced to digits.
"""

import logging
from typing import Optional

from apps.payments.domain import CustomerType
from apps.payments.errors import CustomerDocumentMissing, CustomerEmailMissing

logger = logging.getLogger(__name__)

MIN_DOCUMENT_DIGITS = 11  # CPF; CNPJ has 14
MIN_PHONE_DIGITS = 10  # area code + number


def only_digits(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def _mask(value: str, head: int, tail: int) -> str:
    return f"{value[:head]}***{value[-tail:]}" if len(value) > head + tail else "***"


def resolve_email(on_file: Optional[str]) -> str:
    """Return the customer email.

    Raises:
        CustomerEmailMissing: If the profile has no email contact.
    """
    email = (on_file or "").strip()
    if not email:
        raise CustomerEmailMissing("The user has no email contact on file")
    return email


def resolve_document(explicit: Optional[str], on_file: Optional[str]) -> str:
    """Return the first document with at least 11 digits.

    Raises:
        CustomerDocumentMissing: If neither candidate is usable.
    """
    for source, candidate in (("payment form", explicit), ("profile", on_file)):
        digits = only_digits(candidate)
        if len(digits) >= MIN_DOCUMENT_DIGITS:
            logger.info("customer document resolved", extra={"source": source, "document": _mask(digits, 3, 2)})
            return digits
        if candidate:
            logger.warning("ignoring invalid customer document", extra={"source": source})
    raise CustomerDocumentMissing(
        "A CPF/CNPJ is required to process payments; add it to the profile or the payment form"
    )


def resolve_phone(explicit: Optional[str], on_file: Optional[str], placeholder: str) -> str:
    """Return the first phone with at least 10 digits, else ``placeholder``."""
    for source, candidate in (("payment form", explicit), ("profile", on_file)):
        digits = only_digits(candidate)
        if len(digits) >= MIN_PHONE_DIGITS:
            logger.info("customer phone resolved", extra={"source": source, "phone": _mask(digits, 2, 4)})
            return digits
    logger.warning("customer phone not found, using placeholder")
    return only_digits(placeholder)


def customer_type_for(document: str) -> CustomerType:
    """CNPJ (14 digits) identifies a corporation, anything else an individual."""
    return CustomerType.CORPORATION if len(document) == 14 else CustomerType.INDIVIDUAL
