"""HTTP views for the orders app.

Views are kept small: they read the caller identity forwarded in
``X-User-Id``, validate the body with a pydantic schema, delegate to the
``OrderService`` returned by ``get_order_service()`` and render the result.
Expected failures are mapped by ``apps.common.responses.error_response``.

Idempotency: when an ``Idempotency-Key`` header is provided, order creation
is processed once per (user, key). Retries with the same payload replay the
stored response (same status, ``Idempotent-Replay: true``); reusing the key
with a different payload returns 409.
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.responses import EXPECTED_ERRORS, error_response, require_user

from .domain import OrderFilters
from .idempotency import finalize, get_or_create_idempotent, scoped_key
from .providers import get_order_service
from .schemas import CartValidationDTO, CreateOrderDTO, OrderPatchDTO, OrderReadDTO


def _render(order) -> dict:
    return OrderReadDTO.from_model(order).model_dump(mode="json")


def _truthy(value) -> bool:
    return str(value).lower() in ("1", "true", "yes")


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List the caller's orders (GET) or create a new one (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            user_id = require_user(request)
            page = int(request.GET.get("page", 1))
            limit = int(request.GET.get("limit", request.GET.get("page_size", 20)))
        except ValueError:
            return Response(
                {"detail": "VALIDATION_ERROR", "message": "page and limit must be integers"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except EXPECTED_ERRORS as e:
            return error_response(e)

        filters = OrderFilters(
            status=request.GET.get("status") or None,
            payment_status=request.GET.get("payment_status") or None,
        )
        orders, total = get_order_service().list_orders(
            page=page, limit=limit, filters=filters, requesting_user_id=user_id
        )
        return Response(
            {
                "count": total,
                "page": max(1, page),
                "limit": limit,
                "results": [_render(o) for o in orders],
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        """Create an order.

        Returns:
            Response: One of the following responses.
            - 201 with the order when it was created (and charged, if card
              data was sent).
            - the stored response, with ``Idempotent-Replay: true``, for a
              retried ``Idempotency-Key``.
            - 409 ``IDEMPOTENCY_CONFLICT`` when the key is reused with a
              different payload.
            - 400 for schema errors, ``EMPTY_ORDER`` or ``INVALID_DISCOUNT``.
            - 404/422 for unknown, unorderable or out-of-stock products.
            - 402 ``PAYMENT_FAILED`` when the gateway declines the card.
            - 503 ``UPSTREAM_UNAVAILABLE`` when the gateway cannot be reached.
        """
        idem_key = request.headers.get("Idempotency-Key")
        rec = None
        try:
            user_id = require_user(request)
            dto = CreateOrderDTO.model_validate(request.data)

            if idem_key:
                existing, rec = get_or_create_idempotent(scoped_key(user_id, idem_key), request.data)
                if existing:
                    if not rec.response_status:
                        return Response(
                            {"detail": "IDEMPOTENCY_IN_PROGRESS", "message": "The original request is still running"},
                            status=status.HTTP_409_CONFLICT,
                        )
                    resp = Response(rec.response_body, status=rec.response_status)
                    resp["Idempotent-Replay"] = "true"
                    return resp

            order = get_order_service().create_order(dto.to_command(user_id))
        except EXPECTED_ERRORS as e:
            resp = error_response(e)
            # the key stays open for retries when the request itself was invalid
            if rec is not None:
                if resp.status_code >= 500 or resp.status_code == 400:
                    rec.delete()
                else:
                    finalize(rec, resp.status_code, resp.data)
            return resp

        body = _render(order)
        if rec is not None:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """Read, partially update or soft-delete one order."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = get_order_service().get_order(oid, require_user(request))
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)

    def patch(self, request, oid):
        try:
            user_id = require_user(request)
            service = get_order_service()
            service.get_order(oid, user_id)
            dto = OrderPatchDTO.model_validate(request.data)
            order = service.update_order(
                oid, dto.model_dump(exclude_unset=True), requesting_user_id=user_id
            )
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)

    def delete(self, request, oid):
        try:
            get_order_service().delete_order(
                oid,
                requesting_user_id=require_user(request),
                restore_stock=_truthy(request.GET.get("restore_stock", "false")),
            )
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OrderCancelView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def post(self, request, oid):
        try:
            order = get_order_service().cancel_order(oid, require_user(request))
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(_render(order), status=status.HTTP_200_OK)


class ValidateCartView(APIView):
    """Pre-flight check of cart lines; nothing is reserved."""

    def post(self, request):
        try:
            require_user(request)
            dto = CartValidationDTO.model_validate(request.data)
        except EXPECTED_ERRORS as e:
            return error_response(e)

        result = get_order_service().validate_cart_items([i.to_domain() for i in dto.items])
        return Response(
            {
                "valid": not result.invalid_items,
                "valid_items": [
                    {"product_id": i.product_id, "quantity": i.quantity} for i in result.valid_items
                ],
                "invalid_items": [
                    {
                        "product_id": v.product_id,
                        "requested_quantity": v.requested_quantity,
                        "reason": v.reason.value if v.reason else None,
                        "available_quantity": v.available_quantity,
                    }
                    for v in result.invalid_items
                ],
            },
            status=status.HTTP_200_OK,
        )
