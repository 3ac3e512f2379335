"""Default wiring of the Tickets services."""

from __future__ import annotations

from modules.core.repositories.users import UserDjangoRepository
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.wiring import build_order_ledger
from modules.tickets.repositories.django_repository import TicketDjangoRepository
from modules.tickets.services import TicketCoordinator
from shared.infrastructure.bus import event_bus


def build_ticket_coordinator() -> TicketCoordinator:
    return TicketCoordinator(
        ticket_repository=TicketDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        user_repository=UserDjangoRepository(),
        order_ledger=build_order_ledger(),
        event_bus=event_bus,
    )
