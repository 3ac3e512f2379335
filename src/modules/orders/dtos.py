"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the pricing collaborator / API layer
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``PricedCartItemDTO``: a single priced line item (major units).
- ``PricedCartDTO``: the priced cart produced by the pricing collaborator.
- ``CreateOrderDTO``: input for order creation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class PricedCartItemDTO(BaseModel):
    """Immutable DTO for a single priced cart line."""

    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    image_url: Optional[str] = None


class PricedCartDTO(BaseModel):
    """Immutable DTO for a priced cart.

    Amounts are major units (e.g. ``Decimal("25.00")``); the ledger
    converts them to integer minor units.  Floats are rejected so that no
    binary rounding error reaches the stored totals.
    """

    model_config = ConfigDict(frozen=True, strict=False)

    subtotal: Decimal = Field(ge=0)
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    items: List[PricedCartItemDTO] = Field(default_factory=list)

    @field_validator("subtotal", "delivery_fee", "fees", mode="before")
    @classmethod
    def reject_floats(cls, v: object) -> object:
        if isinstance(v, float):
            raise ValueError("Monetary amounts must be Decimal or str, not float.")
        return v

    @field_validator("currency")
    @classmethod
    def currency_must_be_iso(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("Currency must be a 3-letter ISO code.")
        return code


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests."""

    model_config = ConfigDict(frozen=True)

    owner_id: int
    cart_url: str = Field(max_length=500)
    priced_cart: PricedCartDTO

    @field_validator("cart_url")
    @classmethod
    def cart_url_must_be_http(cls, v: str) -> str:
        value = v.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Cart URL must be an absolute http(s) URL.")
        return value

