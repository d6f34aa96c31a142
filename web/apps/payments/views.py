"""HTTP views for the payments app.

Charging an order, checking a transaction, capture and refund go through the
``OrderService`` so the owning order stays reconciled with the gateway.
Payout recipients are proxied to the gateway adapter directly.
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.responses import EXPECTED_ERRORS, error_response, require_user
from apps.orders.providers import get_order_service
from apps.orders.schemas import OrderReadDTO

from .providers import get_payment_gateway
from .schemas import AmountDTO, ProcessPaymentDTO, RecipientCreateDTO


def _transaction_body(tx) -> dict:
    return {
        "transaction_id": tx.id,
        "charge_id": tx.charge_id,
        "status": tx.canonical_status.value,
        "gateway_status": tx.raw_status,
        "message": tx.message,
    }


class PaymentsView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments"


class ProcessPaymentView(PaymentsView):
    """Charge an existing order with the given card."""

    def post(self, request):
        try:
            user_id = require_user(request)
            dto = ProcessPaymentDTO.model_validate(request.data)
            order = get_order_service().process_payment(
                str(dto.order_id),
                dto.card.to_domain(),
                dto.billing.to_domain(),
                requesting_user_id=user_id,
            )
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(OrderReadDTO.from_model(order).model_dump(mode="json"), status=status.HTTP_200_OK)


class TransactionStatusView(PaymentsView):
    def get(self, request, tid: str):
        try:
            info = get_order_service().get_payment_status(tid, require_user(request))
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(
            {
                "transaction_id": info.transaction_id,
                "status": info.status,
                "gateway_status": info.raw_status,
                "amount": str(info.amount) if info.amount is not None else None,
                "order_id": info.order_id,
                "message": info.message,
            },
            status=status.HTTP_200_OK,
        )


class TransactionCaptureView(PaymentsView):
    def post(self, request, tid: str):
        try:
            user_id = require_user(request)
            dto = AmountDTO.model_validate(request.data or {})
            tx = get_order_service().capture_transaction(tid, dto.amount, requesting_user_id=user_id)
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(_transaction_body(tx), status=status.HTTP_200_OK)


class TransactionRefundView(PaymentsView):
    def post(self, request, tid: str):
        try:
            user_id = require_user(request)
            dto = AmountDTO.model_validate(request.data or {})
            tx = get_order_service().refund_transaction(tid, dto.amount, requesting_user_id=user_id)
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(_transaction_body(tx), status=status.HTTP_200_OK)


class RecipientsCollectionView(PaymentsView):
    def get(self, request):
        try:
            require_user(request)
            page = max(1, int(request.GET.get("page", 1)))
            size = min(max(1, int(request.GET.get("size", 20))), 100)
            data = get_payment_gateway().list_recipients(page=page, size=size)
        except ValueError:
            return Response(
                {"detail": "VALIDATION_ERROR", "message": "page and size must be integers"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(data, status=status.HTTP_200_OK)

    def post(self, request):
        try:
            require_user(request)
            dto = RecipientCreateDTO.model_validate(request.data)
            recipient = get_payment_gateway().create_recipient(dto.to_payload())
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(recipient, status=status.HTTP_201_CREATED)


class RecipientDetailView(PaymentsView):
    def get(self, request, rid: str):
        try:
            require_user(request)
            recipient = get_payment_gateway().get_recipient(rid)
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(recipient, status=status.HTTP_200_OK)
