from apps.common.errors import DomainError


class EmptyOrder(DomainError):
    code = "EMPTY_ORDER"
    status_code = 400


class InvalidDiscount(DomainError):
    code = "INVALID_DISCOUNT"
    status_code = 400


class InvalidOrderUpdate(DomainError):
    code = "INVALID_ORDER_UPDATE"
    status_code = 400


class UserNotFound(DomainError):
    code = "USER_NOT_FOUND"
    status_code = 404


class OrderNotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class OrderAuthorizationError(DomainError):
    """The requesting user does not own the order (403, not 404)."""

    code = "FORBIDDEN"
    status_code = 403


class OrderAlreadyCancelled(DomainError):
    code = "ORDER_ALREADY_CANCELLED"
    status_code = 409


class OrderNotCancellable(DomainError):
    code = "ORDER_NOT_CANCELLABLE"
    status_code = 409


class OrderAlreadyPaid(DomainError):
    code = "ORDER_ALREADY_PAID"
    status_code = 409
