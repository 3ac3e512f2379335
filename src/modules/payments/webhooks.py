"""Card-rail confirmation via Stripe webhooks.

``StripeWebhookReconciler`` is a leaf: it authenticates the event, applies
it to the Payment row with a conditional write and reports a
``WebhookOutcome``.  Delivery is at-least-once and unordered, so:

- a replayed ``payment_intent.succeeded`` is a no-op on the payment;
- ``payment_intent.payment_failed`` never overwrites ``success``;
- unknown event types and events that match no payment are acknowledged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import stripe
import structlog
from django.core.exceptions import ImproperlyConfigured

from modules.payments.constants import (
    STRIPE_EVENT_FAILED,
    STRIPE_EVENT_SUCCEEDED,
    PaymentMethod,
    PaymentStatus,
)
from modules.payments.exceptions import InvalidWebhookSignature, MalformedWebhookPayload

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.models import Payment
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

HANDLED_EVENTS = frozenset({STRIPE_EVENT_SUCCEEDED, STRIPE_EVENT_FAILED})


@dataclass(frozen=True)
class WebhookOutcome:
    event_type: str
    handled: bool = False
    order_id: Optional[str] = None
    method: Optional[str] = None
    status: Optional[str] = None
    failure_reason: str = ""
    # True only when this delivery moved the payment into ``status``.
    transitioned: bool = False

    @property
    def succeeded(self) -> bool:
        return (
            self.handled
            and self.event_type == STRIPE_EVENT_SUCCEEDED
            and self.status == PaymentStatus.SUCCESS
        )


class StripeWebhookReconciler:
    def __init__(
        self,
        payment_repository: IPaymentRepository,
        order_repository: IOrderRepository,
        webhook_secret: str,
    ) -> None:
        if not webhook_secret:
            raise ImproperlyConfigured("STRIPE_WEBHOOK_SECRET is not configured.")
        self._payment_repo = payment_repository
        self._order_repo = order_repository
        self._secret = webhook_secret

    def construct_event(self, payload: bytes, signature_header: str) -> Dict[str, Any]:
        """Authenticate and parse a webhook body into a plain dict.

        Returns the decoded JSON object, not a ``stripe.Event``.

        Raises:
            InvalidWebhookSignature: missing or invalid ``Stripe-Signature``.
            MalformedWebhookPayload: authentic but unparseable body.
        """
        if not signature_header:
            logger.warning("payment.webhook.signature_missing")
            raise InvalidWebhookSignature("Missing Stripe-Signature header.")
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                self._secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(payload)
        except stripe.SignatureVerificationError as exc:
            logger.warning("payment.webhook.signature_invalid", error=str(exc))
            raise InvalidWebhookSignature("Invalid webhook signature.") from exc
        except ValueError as exc:
            logger.warning("payment.webhook.payload_invalid", error=str(exc))
            raise MalformedWebhookPayload("Invalid webhook payload.") from exc
        if not isinstance(event, dict):
            logger.warning("payment.webhook.payload_invalid", error="not an object")
            raise MalformedWebhookPayload("Invalid webhook payload.")
        return event

    def apply(self, event: Mapping[str, Any]) -> WebhookOutcome:
        """Apply an authenticated event to the matching payment."""
        event_type = event.get("type", "")
        log = logger.bind(event_type=event_type, event_id=event.get("id"))
        if event_type not in HANDLED_EVENTS:
            log.info("payment.webhook.ignored")
            return WebhookOutcome(event_type=event_type)

        intent = (event.get("data") or {}).get("object") or {}
        intent_id = intent.get("id") or ""
        metadata = intent.get("metadata") or {}
        log = log.bind(intent_id=intent_id, metadata_order_id=metadata.get("order_id"))

        payment = self._locate(intent_id, metadata.get("order_id"), intent)
        if payment is None:
            log.warning("payment.webhook.unmatched")
            return WebhookOutcome(event_type=event_type)

        order_id = payment.order.order_id
        log = log.bind(order_id=order_id)

        if event_type == STRIPE_EVENT_SUCCEEDED:
            settlement = self._card_settlement(payment, intent)
            if settlement:
                log.info("payment.webhook.rail_switched", previous_method=payment.method)
            transitioned = self._payment_repo.mark_success(
                order_id,
                amount_received=intent.get("amount_received"),
                processor_intent_id=intent_id or None,
                settlement=settlement,
            )
        else:
            if self._is_stale_attempt(payment, intent_id):
                log.info("payment.webhook.stale_failure_ignored", method=payment.method)
                return WebhookOutcome(event_type=event_type)
            reason = (intent.get("last_payment_error") or {}).get(
                "message"
            ) or "card payment failed"
            transitioned = self._payment_repo.mark_failed(order_id, reason)

        current = self._payment_repo.get_by_id(order_id) or payment
        if transitioned:
            log.info("payment.webhook.applied", status=current.status)
        else:
            log.info("payment.webhook.duplicate", status=current.status)

        return WebhookOutcome(
            event_type=event_type,
            handled=True,
            order_id=order_id,
            method=current.method,
            status=current.status,
            failure_reason=current.failure_reason,
            transitioned=transitioned,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _locate(
        self,
        intent_id: str,
        order_id: Optional[str],
        intent: Mapping[str, Any],
    ) -> Optional[Payment]:
        payment = self._payment_repo.get_by_intent_id(intent_id)
        if payment is not None or not order_id:
            return payment

        # Older intents may predate the stored intent id.
        payment = self._payment_repo.get_by_id(order_id)
        if payment is not None:
            return payment

        order = self._order_repo.get_by_id(order_id)
        if order is None:
            return None
        card_option = order.pricing_option("card") or {}
        payment, _ = self._payment_repo.get_or_create_for_order(
            order,
            {
                "method": PaymentMethod.CARD,
                "status": PaymentStatus.PENDING,
                "amount": intent.get("amount") or card_option.get("final_total", 0),
                "currency": (intent.get("currency") or order.currency).upper(),
                "processor_intent_id": intent_id,
            },
        )
        return payment

    @staticmethod
    def _card_settlement(payment: Payment, intent: Mapping[str, Any]) -> Dict[str, Any]:
        """Rail fields to rewrite when a card intent settles a non-card row."""
        if payment.method == PaymentMethod.CARD:
            return {}
        settlement: Dict[str, Any] = {"method": PaymentMethod.CARD}
        if intent.get("amount") is not None:
            settlement["amount"] = intent["amount"]
        if intent.get("currency"):
            settlement["currency"] = intent["currency"].upper()
        return settlement

    @staticmethod
    def _is_stale_attempt(payment: Payment, intent_id: str) -> bool:
        """A failure for an intent that is no longer the current attempt."""
        if payment.method != PaymentMethod.CARD:
            return True
        return bool(
            payment.processor_intent_id
            and intent_id
            and payment.processor_intent_id != intent_id
        )
