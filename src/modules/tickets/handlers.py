"""Event handlers for Tickets domain events."""

from __future__ import annotations

import structlog

from modules.tickets.events import TicketClaimed, TicketCreated, TicketStatusChanged
from shared.domain.bus import IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class TicketNotificationHandler(IEventHandler[DomainEvent]):
    """Logs every ticket notification handed to the transport layer."""

    def handle(self, event: DomainEvent) -> None:
        logger.info(
            "notification.emitted", notification=event.event_name, **event.to_payload()
        )


ticket_notification_handler = TicketNotificationHandler()

TICKET_EVENTS = (TicketCreated, TicketClaimed, TicketStatusChanged)
