"""Event handlers for Payments domain events."""

from __future__ import annotations

import structlog

from modules.payments.events import PaymentResolved
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class PaymentResolvedHandler(IEventHandler[PaymentResolved]):
    def handle(self, event: PaymentResolved) -> None:
        logger.info(
            "notification.emitted", notification=event.event_name, **event.to_payload()
        )


payment_resolved_handler = PaymentResolvedHandler()
