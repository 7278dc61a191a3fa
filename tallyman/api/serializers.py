"""
Tallyman API Serializers.
"""

from decimal import Decimal

from rest_framework import serializers


class ReconcileRequestSerializer(serializers.Serializer):
    """Input for POST /products/{id}/reconcile/."""

    total_stock = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    base_price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0"),
        required=False,
        allow_null=True,
    )

    def validate(self, attrs):
        if attrs.get("total_stock") is None and attrs.get("base_price") is None:
            raise serializers.ValidationError(
                "Provide total_stock, base_price or both."
            )
        return attrs
