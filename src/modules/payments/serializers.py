"""Payment DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.constants import PaymentMethod
from modules.payments.models import Payment

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=16)
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    amount_sol = serializers.DecimalField(
        max_digits=20,
        decimal_places=9,
        min_value=0,
        required=False,
        allow_null=True,
    )


class ConfirmChainPaymentSerializer(serializers.Serializer):
    tx_signature = serializers.CharField(max_length=128)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class PaymentSerializer(serializers.ModelSerializer):
    order_id = serializers.CharField(source="order.order_id", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "order_id",
            "method",
            "status",
            "amount",
            "currency",
            "failure_reason",
            "amount_received",
            "recipient",
            "reference",
            "tx_signature",
            "resolved_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
