"""Domain events for the Payments bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class PaymentResolved(DomainEvent):
    """Raised when a payment reaches ``success`` or ``failed``."""

    event_name = "payment.resolved"

    order_id: str
    method: str
    status: str
    failure_reason: Optional[str] = None
