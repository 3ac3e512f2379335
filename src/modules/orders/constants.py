"""Order domain constants.

Defines status choices, the order state machine and the pricing option
keys stored in ``Order.pricing_options``.
"""

from typing import Optional

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PLACED = "PLACED", "Placed"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"


# Written by older clients; always read and persisted as PLACED.
LEGACY_DELIVERED = "DELIVERED"

VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PLACED, OrderStatus.CANCELLED},
    OrderStatus.PLACED: {OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Statuses counted against the per-cart active limit.  The legacy value is
# listed because rows written by older clients may still hold it.
ACTIVE_STATES: tuple[str, ...] = (OrderStatus.PLACED, LEGACY_DELIVERED)

# Transitions that only a staff member or administrator may request.
STAFF_ONLY_TARGETS: set[str] = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


class PricingOption(models.TextChoices):
    """Keys of the per-rail discount table."""

    SOL = "sol", "Solana"
    SPL = "spl", "SPL token"
    CARD = "card", "Card"


ORDER_ID_PREFIX = "MC"
ORDER_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ORDER_ID_LENGTH = 6
ORDER_ID_MAX_RETRIES = 5


def normalize_order_status(status: Optional[str]) -> Optional[str]:
    """Map the legacy ``DELIVERED`` value to ``PLACED``; pass others through."""
    if status == LEGACY_DELIVERED:
        return OrderStatus.PLACED
    return status
