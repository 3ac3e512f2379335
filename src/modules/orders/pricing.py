"""Integer minor-unit arithmetic for order totals and per-rail discounts.

All rounding is ``ROUND_HALF_UP`` on ``Decimal``; results are ``int``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Mapping

MINOR_UNITS_PER_MAJOR = 100
_ONE = Decimal("1")


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. dollars) to minor units (cents)."""
    value = Decimal(amount)
    if value < 0:
        raise ValueError(f"Amount must not be negative, got {amount}.")
    return int((value * MINOR_UNITS_PER_MAJOR).quantize(_ONE, rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: int) -> int:
    return int(
        (Decimal(amount) * Decimal(percent) / Decimal(100)).quantize(
            _ONE, rounding=ROUND_HALF_UP
        )
    )


def compute_pricing_options(
    gross: int, discounts: Mapping[str, int]
) -> Dict[str, Dict[str, int]]:
    """Build the discount table stored on the order.

    >>> compute_pricing_options(2500, {"sol": 40, "card": 0})["sol"]
    {'discount_percent': 40, 'discount_amount': 1000, 'final_total': 1500}
    """
    options: Dict[str, Dict[str, int]] = {}
    for key, percent in discounts.items():
        if not 0 <= percent <= 100:
            raise ValueError(f"Discount for {key} must be within 0..100, got {percent}.")
        discount_amount = percent_of(gross, percent)
        options[key] = {
            "discount_percent": percent,
            "discount_amount": discount_amount,
            "final_total": gross - discount_amount,
        }
    return options
