from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.responses import EXPECTED_ERRORS, error_response, require_user

from .inventory import InventoryLedger, StockOperation
from .schemas import StockUpdateDTO


class ProductStockView(APIView):
    """Adjust a product's stock outside the ordering flow."""

    def patch(self, request, pid):
        try:
            require_user(request)
            dto = StockUpdateDTO.model_validate(request.data)
            quantity = InventoryLedger().update_stock(pid, dto.quantity, StockOperation(dto.operation))
        except EXPECTED_ERRORS as e:
            return error_response(e)
        return Response(
            {"product_id": str(pid), "quantity": quantity, "stock_tracked": quantity is not None},
            status=status.HTTP_200_OK,
        )
