"""Django ORM implementation of the Ticket repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.utils import timezone

from modules.orders.models import Order
from modules.tickets.constants import TicketStatus
from modules.tickets.models import Ticket
from modules.tickets.repositories.interfaces import ITicketRepository

logger = structlog.get_logger(__name__)


class TicketDjangoRepository(ITicketRepository):
    """Concrete Ticket repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Ticket]:
        return Ticket.objects.select_related("order").filter(ticket_id=id).first()

    def get_for_update(self, ticket_id: str) -> Optional[Ticket]:
        return (
            Ticket.objects.select_for_update()
            .select_related("order")
            .filter(ticket_id=ticket_id)
            .first()
        )

    def get_by_order(self, order_id: str) -> Optional[Ticket]:
        return (
            Ticket.objects.select_related("order")
            .filter(order__order_id=order_id)
            .first()
        )

    def save(self, entity: Ticket) -> Ticket:
        entity.save()
        return entity

    def get_or_create_for_order(
        self, order: Order, defaults: Dict[str, Any]
    ) -> tuple[Ticket, bool]:
        return Ticket.objects.get_or_create(order=order, defaults=defaults)

    def claim(self, ticket_id: str, staff_id: int) -> bool:
        rows = Ticket.objects.filter(
            ticket_id=ticket_id,
            claimed_by__isnull=True,
            status=TicketStatus.OPEN,
        ).update(claimed_by_id=staff_id, updated_at=timezone.now())
        return rows == 1

    def assign(self, ticket_id: str, staff_id: int) -> bool:
        rows = Ticket.objects.filter(
            ticket_id=ticket_id,
            status=TicketStatus.OPEN,
        ).update(claimed_by_id=staff_id, updated_at=timezone.now())
        return rows == 1
