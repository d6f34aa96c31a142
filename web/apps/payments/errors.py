from apps.common.errors import DomainError


class CustomerEmailMissing(DomainError):
    code = "CUSTOMER_EMAIL_MISSING"
    status_code = 400


class CustomerDocumentMissing(DomainError):
    code = "CUSTOMER_DOCUMENT_MISSING"
    status_code = 400


class PaymentDeclined(DomainError):
    code = "PAYMENT_FAILED"
    status_code = 402


class TransactionNotFound(DomainError):
    code = "TRANSACTION_NOT_FOUND"
    status_code = 404


class GatewayError(DomainError):
    """Base for failures talking to the payment gateway."""

    code = "GATEWAY_ERROR"
    status_code = 502


class GatewayConfigurationError(GatewayError):
    """The secret key is missing or is not a secret (``sk_``) key."""

    code = "GATEWAY_MISCONFIGURED"
    status_code = 503


class GatewayAuthenticationError(GatewayError):
    code = "GATEWAY_AUTHENTICATION_FAILED"


class GatewayIpNotAllowedError(GatewayError):
    code = "GATEWAY_IP_NOT_ALLOWED"


class GatewayRequestError(GatewayError):
    """Non-2xx answer from the gateway carrying its error messages."""

    def __init__(self, message: str | None = None, status: int | None = None, **extra):
        super().__init__(message, **extra)
        self.status = status


class RecipientNotFound(DomainError):
    code = "RECIPIENT_NOT_FOUND"
    status_code = 404
