"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised after an order status change has been committed."""

    event_name = "order.status_changed"

    order_id: str
    old_status: Optional[str]
    new_status: str
