from apps.common.errors import DomainError


class ProductNotFound(DomainError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class ProductNotOrderable(DomainError):
    """Product exists but cannot be bought through checkout (external URL,
    missing price or inactive)."""

    code = "PRODUCT_NOT_ORDERABLE"
    status_code = 422


class InsufficientStock(DomainError):
    code = "INSUFFICIENT_STOCK"
    status_code = 422
