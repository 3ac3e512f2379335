"""Payment model.

One row per order.  Retries update the same row instead of inserting new
ones, so ``order`` is a one-to-one relation and doubles as the idempotent
creation guard.  Amounts are integer minor units of ``currency``
(lamports for SOL, cents for USD / USDC).
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import PaymentMethod, PaymentStatus


class Payment(BaseModel):
    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    method: models.CharField = models.CharField(
        max_length=10, choices=PaymentMethod.choices
    )
    status: models.CharField = models.CharField(
        max_length=12,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    amount: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    currency: models.CharField = models.CharField(max_length=8)
    failure_reason: models.TextField = models.TextField(blank=True, default="")
    amount_received: models.PositiveBigIntegerField = models.PositiveBigIntegerField(
        null=True, blank=True
    )

    # On-chain rail
    recipient: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    reference: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    tx_signature: models.CharField = models.CharField(  # noqa: DJ01
        max_length=128, unique=True, null=True, blank=True
    )

    # Card rail
    processor_intent_id: models.CharField = models.CharField(
        max_length=255, blank=True, default="", db_index=True
    )

    resolved_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "updated_at"], name="payments_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.method} payment for {self.order_id} ({self.status})"
