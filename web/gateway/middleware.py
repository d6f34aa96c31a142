"""Edge middleware: request correlation, caller identity and payload limits.

``RequestIdMiddleware`` gives every request an identifier, read from the
incoming ``X-Request-Id`` header or generated as a UUIDv4, stores it on the
request and in ``REQUEST_ID_CTX`` for log filters and outbound gateway calls,
and echoes it back in the ``X-Request-ID`` response header.

``AuthenticatedUserMiddleware`` reads the caller identity forwarded by the
authenticating proxy in ``X-User-Id``. Authentication itself happens
upstream; this layer only parses the value and exposes it as
``request.user_id`` (None when absent or malformed) and in ``USER_ID_CTX``.

``ApiSizeLimitMiddleware`` rejects oversized ``/api/`` bodies with 413
before they reach a view.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
USER_ID_CTX = contextvars.ContextVar("user_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Sets and returns a per-request identifier."""

    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        # error handlers may run without the attribute set
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        return response


class AuthenticatedUserMiddleware(MiddlewareMixin):
    """Exposes the proxy-authenticated user id as ``request.user_id``."""

    HEADER = "HTTP_X_USER_ID"

    def process_request(self, request):
        raw = (request.META.get(self.HEADER) or "").strip()
        try:
            user_id = str(uuid.UUID(raw)) if raw else None
        except ValueError:
            user_id = None
        request.user_id = user_id
        USER_ID_CTX.set(user_id or "-")


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse(
                    {"detail": "PAYLOAD_TOO_LARGE", "message": f"Body exceeds {MAX_API_BYTES} bytes"},
                    status=413,
                )
