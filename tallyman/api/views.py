"""
Tallyman API ViewSets.
"""

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from tallyman.exceptions import TallyError
from tallyman.service import Tally

from .serializers import ReconcileRequestSerializer

ERROR_STATUS = {
    "LOCK_NOT_ACQUIRED": status.HTTP_409_CONFLICT,
    "RECORD_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "RECORD_CLIENT_UNAVAILABLE": status.HTTP_502_BAD_GATEWAY,
    "INVALID_RESPONSE": status.HTTP_502_BAD_GATEWAY,
}


def _error_response(error: TallyError) -> Response:
    return Response(
        {"error": error.as_dict()},
        status=ERROR_STATUS.get(error.code, status.HTTP_400_BAD_REQUEST),
    )


class ProductReconciliationViewSet(viewsets.ViewSet):
    """
    Reconciliation endpoints for one product.

    reconcile: Bring SKU stock and/or price in line with the product
    stock: Compare the SKU total with the product's recorded total
    """

    permission_classes = [IsAuthenticated]
    lookup_field = "product_id"

    @action(detail=True, methods=["post"])
    def reconcile(self, request, product_id=None):
        """
        Reconcile a product's SKUs.

        POST /api/tallyman/products/{product_id}/reconcile/
        {
            "total_stock": 120,     // optional
            "base_price": "49.99"   // optional
        }

        200 when every write landed, 207 when some SKUs failed or the
        reduction fell short.
        """
        serializer = ReconcileRequestSerializer(data=request.data)

        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            report = Tally.reconcile(
                product_id,
                total_stock=serializer.validated_data.get("total_stock"),
                base_price=serializer.validated_data.get("base_price"),
            )
        except TallyError as e:
            return _error_response(e)

        return Response(
            report.as_dict(),
            status=status.HTTP_200_OK if report.success else status.HTTP_207_MULTI_STATUS,
        )

    @action(detail=True, methods=["get"])
    def stock(self, request, product_id=None):
        """
        Stock status of a product.

        GET /api/tallyman/products/{product_id}/stock/
        """
        try:
            stock_status = Tally.stock_status(product_id)
        except TallyError as e:
            return _error_response(e)

        return Response(stock_status.as_dict())
