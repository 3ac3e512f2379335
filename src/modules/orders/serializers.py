"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class TransitionStatusSerializer(serializers.Serializer):
    """Validates a staff status transition request."""

    status = serializers.CharField(max_length=20)
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate_status(self, value: str) -> str:
        value = value.strip().upper()
        if value not in OrderStatus.values:
            raise serializers.ValidationError(f"Unknown order status: {value}.")
        return value


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "old_status",
            "new_status",
            "user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with status history."""

    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "order_id",
            "owner_id",
            "cart_url",
            "status",
            "subtotal",
            "delivery_fee",
            "fees",
            "total",
            "currency",
            "items",
            "pricing_options",
            "created_at",
            "updated_at",
            "status_history",
        ]
        read_only_fields = fields
