"""Health endpoint.

Reports database connectivity and whether the payment gateway is usable
with the current configuration (a secret ``sk_`` key when the HTTP adapter
is enabled, always true with the in-process stub). Only the database decides
the HTTP status: a missing gateway key degrades payments but not the API.
"""

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.exception("health check: database unreachable")
        return False
    return True


def _gateway_status() -> dict:
    if not getattr(settings, "USE_HTTP_ADAPTERS", True):
        return {"ok": True, "mode": "stub"}
    key = getattr(settings, "PAYMENT_GATEWAY_SECRET_KEY", "") or ""
    return {"ok": key.startswith("sk_"), "mode": "http"}


def health_view(_request):
    db_ok = _db_ok()
    gateway = _gateway_status()
    return JsonResponse(
        {"ok": db_ok and gateway["ok"], "components": {"db": {"ok": db_ok}, "payment_gateway": gateway}},
        status=200 if db_ok else 503,
    )
