"""Payment DTOs for the Service Layer (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.payments.constants import PaymentMethod


class InitiatePaymentDTO(BaseModel):
    """Immutable DTO for a payment initiation request.

    ``amount_sol`` is used by the solana rail only.  It may be omitted when
    the server quotes SOL prices.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str
    method: PaymentMethod
    amount_sol: Optional[Decimal] = Field(default=None, gt=0)

    @field_validator("amount_sol", mode="before")
    @classmethod
    def reject_floats(cls, v: object) -> object:
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class PaymentInitiation(BaseModel):
    """What the client needs to complete the attempt on its rail."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    method: str
    status: str
    amount: int
    currency: str
    recipient: Optional[str] = None
    reference: Optional[str] = None
    client_secret: Optional[str] = None
