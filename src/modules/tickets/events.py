"""Domain events for the Tickets bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class TicketCreated(DomainEvent):
    event_name = "ticket.created"

    ticket_id: str
    order_id: str


@dataclass(frozen=True, kw_only=True)
class TicketClaimed(DomainEvent):
    event_name = "ticket.claimed"

    ticket_id: str
    staff_id: int


@dataclass(frozen=True, kw_only=True)
class TicketStatusChanged(DomainEvent):
    event_name = "ticket.status_changed"

    ticket_id: str
    status: str
    order_status: Optional[str]
