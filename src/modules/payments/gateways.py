"""Card processor gateway.

Wraps the Stripe SDK behind ``ICardGateway`` so the payment service can be
tested without network access.  The API key is passed per call instead of
being assigned to the ``stripe`` module global.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict

import stripe
import structlog

from modules.payments.exceptions import CardGatewayError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CardIntent:
    id: str
    client_secret: str


class ICardGateway(ABC):
    @abstractmethod
    def create_intent(
        self, amount: int, currency: str, metadata: Dict[str, str]
    ) -> CardIntent:
        """Create a payment intent for ``amount`` minor units of ``currency``."""


class StripeCardGateway(ICardGateway):
    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def create_intent(
        self, amount: int, currency: str, metadata: Dict[str, str]
    ) -> CardIntent:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            logger.error(
                "payment.card.intent_failed",
                order_id=metadata.get("order_id"),
                error=str(exc),
            )
            raise CardGatewayError(str(exc)) from exc

        logger.info(
            "payment.card.intent_created",
            order_id=metadata.get("order_id"),
            intent_id=intent["id"],
            amount=amount,
        )
        return CardIntent(id=intent["id"], client_secret=intent["client_secret"])
