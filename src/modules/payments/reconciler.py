"""Payment reconciliation: the single success chokepoint.

Both confirmation rails (chain verification and card webhooks) and the
simulated token rail funnel every ``success`` through
``PaymentReconciler.on_payment_success``.  Its steps are idempotent, so
recovery is replaying the procedure from the persisted Payment:

1. Advance the Order to PLACED (no-op if already PLACED).
2. Look up or create the order's Ticket; ``ticket.created`` is emitted by
   the ticket coordinator only when a row was actually inserted.

Side effects run only after the payment status itself has been committed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional

import structlog

from modules.orders.exceptions import InvalidOrderStatus
from modules.payments.constants import PaymentStatus
from modules.payments.events import PaymentResolved
from modules.payments.exceptions import InvalidPaymentState, PaymentNotFound

if TYPE_CHECKING:
    from modules.orders.services import OrderLedger
    from modules.payments.chain.verifier import ChainVerifier, VerificationResult
    from modules.payments.models import Payment
    from modules.payments.repositories.interfaces import IPaymentRepository
    from modules.payments.webhooks import StripeWebhookReconciler, WebhookOutcome
    from modules.tickets.models import Ticket
    from modules.tickets.services import TicketCoordinator
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class PaymentReconciler:
    def __init__(
        self,
        payment_repository: IPaymentRepository,
        order_ledger: OrderLedger,
        ticket_coordinator: TicketCoordinator,
        event_bus: IEventBus,
        chain_verifier: Optional[ChainVerifier] = None,
        webhook_reconciler: Optional[StripeWebhookReconciler] = None,
    ) -> None:
        self._payment_repo = payment_repository
        self._ledger = order_ledger
        self._tickets = ticket_coordinator
        self._event_bus = event_bus
        self._chain_verifier = chain_verifier
        self._webhooks = webhook_reconciler

    # ------------------------------------------------------------------
    # Rails
    # ------------------------------------------------------------------

    def record_chain_claim(self, order_id: str, signature: str) -> Payment:
        """Attach the claimed signature; verification happens in ``resolve``."""
        return self._require_chain_verifier().record_claim(order_id, signature)

    def confirm_chain_payment(self, order_id: str, signature: str) -> VerificationResult:
        """Record ``signature`` and verify it synchronously."""
        self.record_chain_claim(order_id, signature)
        return self.resolve_chain_payment(order_id)

    def resolve_chain_payment(self, order_id: str) -> VerificationResult:
        """Resolve a recorded chain claim and apply its side effects."""
        result = self._require_chain_verifier().resolve(order_id)
        if result.transitioned:
            self.publish_resolution(
                order_id, "solana", result.status, result.failure_reason
            )
        if result.succeeded:
            self.on_payment_success(order_id)
        return result

    def handle_webhook(self, payload: bytes, signature_header: str) -> WebhookOutcome:
        """Authenticate and apply a card processor webhook."""
        if self._webhooks is None:
            raise RuntimeError("PaymentReconciler has no webhook reconciler.")
        event = self._webhooks.construct_event(payload, signature_header)
        return self.apply_webhook_event(event)

    def apply_webhook_event(self, event: Mapping[str, Any]) -> WebhookOutcome:
        if self._webhooks is None:
            raise RuntimeError("PaymentReconciler has no webhook reconciler.")
        outcome = self._webhooks.apply(event)
        if not outcome.handled or outcome.order_id is None:
            return outcome
        if outcome.transitioned:
            self.publish_resolution(
                outcome.order_id,
                outcome.method or "card",
                outcome.status or "",
                outcome.failure_reason,
            )
        # Replays still run the idempotent success path so a previously
        # failed ticket creation is retried.
        if outcome.succeeded:
            self.on_payment_success(outcome.order_id)
        return outcome

    # ------------------------------------------------------------------
    # Shared success path
    # ------------------------------------------------------------------

    def on_payment_success(self, order_id: str) -> tuple[Ticket, bool]:
        """Advance the order and open its ticket; safe to call repeatedly."""
        log = logger.bind(order_id=order_id)
        try:
            self._ledger.mark_placed(order_id, notes="Payment confirmed")
        except InvalidOrderStatus as exc:
            # Success is sticky even if staff already cancelled the order.
            log.warning("payment.reconcile.order_not_placeable", error=str(exc))

        ticket, created = self._tickets.open_for_order(order_id)
        log.info(
            "payment.reconciled",
            ticket_id=ticket.ticket_id,
            ticket_created=created,
        )
        return ticket, created

    def replay(self, order_id: str) -> tuple[Ticket, bool]:
        """Re-derive side effects from a persisted ``success`` payment.

        Raises:
            PaymentNotFound: the order has no payment.
            InvalidPaymentState: the payment has not succeeded.
        """
        payment = self._payment_repo.get_by_id(order_id)
        if payment is None:
            raise PaymentNotFound(f"No payment for order {order_id}.")
        if payment.status != PaymentStatus.SUCCESS:
            raise InvalidPaymentState(
                f"Payment for order {order_id} is {payment.status}, not success."
            )
        logger.info("payment.replay", order_id=order_id)
        return self.on_payment_success(order_id)

    def publish_resolution(
        self, order_id: str, method: str, status: str, failure_reason: str = ""
    ) -> None:
        """Emit ``payment.resolved`` for a committed status transition."""
        self._event_bus.publish(
            PaymentResolved(
                order_id=order_id,
                method=method,
                status=status,
                failure_reason=failure_reason or None,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_chain_verifier(self) -> ChainVerifier:
        if self._chain_verifier is None:
            raise RuntimeError("PaymentReconciler has no chain verifier.")
        return self._chain_verifier
