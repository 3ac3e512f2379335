"""Order and OrderStatusHistory models.

Business rules implemented:
- Monetary fields are integer minor units (cents); floats never reach the DB.
- ``order_id`` is a human-shareable identifier (``MC-XXXXXX``) generated on
  first save; the UUIDv7 ``id`` stays internal.
- ``status`` is an ``OrderStatusField``: legacy ``DELIVERED`` rows read back
  as ``PLACED`` and are written as ``PLACED``.
- Transitions are validated against ``VALID_TRANSITIONS`` by the ledger.
- Each status change is recorded in ``OrderStatusHistory``.
"""

from __future__ import annotations

import secrets
from typing import Any, Dict, Optional

import structlog
from django.conf import settings
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_ID_ALPHABET,
    ORDER_ID_LENGTH,
    ORDER_ID_MAX_RETRIES,
    ORDER_ID_PREFIX,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.fields import OrderStatusField

logger = structlog.get_logger(__name__)


class Order(BaseModel):
    """A priced third-party cart owned by exactly one user."""

    order_id: models.CharField = models.CharField(
        max_length=16, unique=True, editable=False
    )
    owner: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    cart_url: models.CharField = models.CharField(max_length=500)
    status: OrderStatusField = OrderStatusField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    subtotal: models.PositiveBigIntegerField = models.PositiveBigIntegerField(default=0)
    delivery_fee: models.PositiveBigIntegerField = models.PositiveBigIntegerField(
        default=0
    )
    fees: models.PositiveBigIntegerField = models.PositiveBigIntegerField(default=0)
    total: models.PositiveBigIntegerField = models.PositiveBigIntegerField(default=0)
    currency: models.CharField = models.CharField(max_length=3, default="USD")
    items: models.JSONField = models.JSONField(default=list, blank=True)
    pricing_options: models.JSONField = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "cart_url"], name="orders_owner_cart_idx"),
            models.Index(fields=["status"], name="orders_status_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    def pricing_option(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the discount entry (``sol``, ``spl`` or ``card``) if priced."""
        return (self.pricing_options or {}).get(key)

    # ------------------------------------------------------------------
    # Order id generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_id() -> str:
        """Generate a human-shareable order id: ``MC-XXXXXX``."""
        suffix = "".join(
            secrets.choice(ORDER_ID_ALPHABET) for _ in range(ORDER_ID_LENGTH)
        )
        return f"{ORDER_ID_PREFIX}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_id:
            for attempt in range(ORDER_ID_MAX_RETRIES):
                candidate = self.generate_order_id()
                if not Order.objects.filter(order_id=candidate).exists():
                    self.order_id = candidate
                    break
                logger.warning("order.id_collision", attempt=attempt + 1)
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_id after "
                    f"{ORDER_ID_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``user`` is nullable: ``None`` means the change was performed by the
    system (payment reconciliation or ticket resolution).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(max_length=20)
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
