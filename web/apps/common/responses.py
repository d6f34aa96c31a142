"""Translation of expected failures into API error responses.

Views catch ``EXPECTED_ERRORS`` around their service calls and hand the
exception to ``error_response``:

- ``DomainError`` -> its ``status_code`` and ``to_body()``
- pydantic ``ValidationError`` -> 400 ``VALIDATION_ERROR`` with the field errors
- httpx transport errors and an open circuit -> 503 ``UPSTREAM_UNAVAILABLE``
"""

import logging

import httpx
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response

from apps.payments.http_adapters import CircuitOpenError

from .errors import DomainError, Unauthenticated

logger = logging.getLogger(__name__)

EXPECTED_ERRORS = (DomainError, ValidationError, httpx.RequestError, CircuitOpenError)


def validation_body(exc: ValidationError) -> dict:
    return {
        "detail": "VALIDATION_ERROR",
        "message": f"{exc.error_count()} validation error(s)",
        "errors": [
            {"loc": [str(p) for p in err["loc"]], "msg": err["msg"], "type": err["type"]}
            for err in exc.errors(include_url=False)
        ],
    }


def error_response(exc: Exception) -> Response:
    if isinstance(exc, DomainError):
        if exc.status_code >= 500:
            logger.error("request failed", extra={"code": exc.code})
        return Response(exc.to_body(), status=exc.status_code)
    if isinstance(exc, ValidationError):
        return Response(validation_body(exc), status=status.HTTP_400_BAD_REQUEST)
    logger.warning("upstream unavailable", extra={"error": type(exc).__name__})
    return Response(
        {"detail": "UPSTREAM_UNAVAILABLE", "message": "The payment gateway is unavailable"},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


def require_user(request) -> str:
    """Return the caller's user id or raise ``Unauthenticated``."""
    user_id = getattr(request, "user_id", None)
    if not user_id:
        raise Unauthenticated("Missing or invalid X-User-Id header")
    return user_id
