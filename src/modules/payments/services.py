"""Payment initiation (Use Cases).

``PaymentService.initiate_payment`` opens or supersedes the single Payment
row of an order on one of three rails:

- **card**: a processor PaymentIntent is created for the card-discounted
  total *before* any row lock is taken; the client secret is returned.
- **solana**: the expected lamports (the client amount, checked against a
  server quote when ``SOLANA_PRICE`` is set), recipient and a fresh memo
  reference are stored; the client then submits the transaction signature.
- **token**: simulated rail, resolved ``success`` immediately and funneled
  through the ``PaymentReconciler``.

A ``pending`` or ``failed`` attempt is superseded in place; ``processing``
and ``success`` are never overwritten.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import uuid4

import structlog
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.orders.pricing import MINOR_UNITS_PER_MAJOR
from modules.payments.constants import (
    LAMPORTS_PER_SOL,
    PRICING_KEY_BY_METHOD,
    SOL_CURRENCY,
    SUPERSEDABLE_STATES,
    TOKEN_CURRENCY,
    PaymentMethod,
    PaymentStatus,
)
from modules.payments.dtos import PaymentInitiation
from modules.payments.exceptions import (
    InvalidPaymentAmount,
    InvalidPaymentState,
    PaymentAlreadyCompleted,
    PaymentForbidden,
)

if TYPE_CHECKING:
    from modules.core.actors import Actor
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.chain.settings import ChainSettings
    from modules.payments.dtos import InitiatePaymentDTO
    from modules.payments.gateways import ICardGateway
    from modules.payments.models import Payment
    from modules.payments.reconciler import PaymentReconciler
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


def sol_to_lamports(amount_sol: Decimal) -> int:
    """Convert SOL to integer lamports, rounding half-up."""
    value = Decimal(amount_sol)
    if value <= 0:
        raise InvalidPaymentAmount("amount_sol must be a positive number.")
    return int((value * LAMPORTS_PER_SOL).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    """Application service for payment initiation."""

    def __init__(
        self,
        payment_repository: IPaymentRepository,
        order_repository: IOrderRepository,
        card_gateway: ICardGateway,
        chain_settings: ChainSettings,
        reconciler: PaymentReconciler,
    ) -> None:
        self._payment_repo = payment_repository
        self._order_repo = order_repository
        self._card_gateway = card_gateway
        self._chain_settings = chain_settings
        self._reconciler = reconciler

    def initiate_payment(self, dto: InitiatePaymentDTO, actor: Actor) -> PaymentInitiation:
        """Start (or restart) the payment attempt for an order.

        Raises:
            OrderNotFound: order does not exist.
            PaymentForbidden: the actor does not own the order.
            InvalidPaymentState: the order is not PENDING, is not priced for
                the rail, or a verification is in progress.
            PaymentAlreadyCompleted: the order is already paid.
            InvalidPaymentAmount: solana attempt without a positive amount,
                or below the server quote.
            CardGatewayError: the card processor failed.
        """
        order = self._order_repo.get_by_id(dto.order_id)
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")
        if order.owner_id != actor.id:
            raise PaymentForbidden("You can only pay for your own orders.")
        if order.status != OrderStatus.PENDING:
            raise InvalidPaymentState(
                f"Order {dto.order_id} is {order.status}; only pending orders "
                "accept payments."
            )

        # Fail fast before talking to the card processor.
        self._ensure_supersedable(self._payment_repo.get_by_id(dto.order_id))

        log = logger.bind(order_id=dto.order_id, method=dto.method)
        attempt = self._build_attempt(order, dto, actor)
        client_secret = attempt.pop("client_secret", None)

        with transaction.atomic():
            payment = self._payment_repo.get_for_update(dto.order_id)
            created = False
            if payment is None:
                payment, created = self._payment_repo.get_or_create_for_order(
                    order, attempt
                )
                if not created:
                    payment = self._payment_repo.get_for_update(dto.order_id)
            if not created:
                self._ensure_supersedable(payment)
                for field, value in attempt.items():
                    setattr(payment, field, value)
                self._payment_repo.save(payment)

        log.info("payment.initiated", status=payment.status, amount=payment.amount)

        if payment.status == PaymentStatus.SUCCESS:
            self._reconciler.publish_resolution(
                dto.order_id, payment.method, payment.status
            )
            self._reconciler.on_payment_success(dto.order_id)

        return PaymentInitiation(
            order_id=dto.order_id,
            method=payment.method,
            status=payment.status,
            amount=payment.amount,
            currency=payment.currency,
            recipient=payment.recipient or None,
            reference=payment.reference or None,
            client_secret=client_secret,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_attempt(
        self, order: Order, dto: InitiatePaymentDTO, actor: Actor
    ) -> Dict[str, Any]:
        attempt: Dict[str, Any] = {
            "method": dto.method,
            "status": PaymentStatus.PENDING,
            "failure_reason": "",
            "amount_received": None,
            "recipient": "",
            "reference": "",
            "tx_signature": None,
            "processor_intent_id": "",
            "resolved_at": None,
        }

        if dto.method == PaymentMethod.SOLANA:
            if not self._chain_settings.recipient:
                raise ImproperlyConfigured("SOLANA_RECIPIENT is not configured.")
            attempt.update(
                amount=self._expected_lamports(order, dto),
                currency=SOL_CURRENCY,
                recipient=self._chain_settings.recipient,
                reference=str(uuid4()),
            )
            return attempt

        final_total = self._final_total(order, dto.method)
        if dto.method == PaymentMethod.CARD:
            intent = self._card_gateway.create_intent(
                final_total,
                order.currency,
                metadata={"order_id": order.order_id, "user_id": str(actor.id)},
            )
            attempt.update(
                amount=final_total,
                currency=order.currency,
                processor_intent_id=intent.id,
                client_secret=intent.client_secret,
            )
            return attempt

        # Simulated token rail settles immediately.
        attempt.update(
            amount=final_total,
            currency=TOKEN_CURRENCY,
            status=PaymentStatus.SUCCESS,
            amount_received=final_total,
            resolved_at=timezone.now(),
        )
        return attempt

    @staticmethod
    def _final_total(order: Order, method: str) -> int:
        option = order.pricing_option(PRICING_KEY_BY_METHOD[method])
        if not option:
            raise InvalidPaymentState(
                f"Order {order.order_id} has no {method} pricing."
            )
        return int(option["final_total"])

    def _expected_lamports(self, order: Order, dto: InitiatePaymentDTO) -> int:
        """Lamports the chain transfer must carry for this attempt.

        Without a configured ``sol_price`` the client's ``amount_sol`` is
        taken as is.  With one, the order's ``sol`` total is quoted and a
        client amount more than ``quote_tolerance_percent`` below the quote
        is rejected; omitting ``amount_sol`` accepts the quote.
        """
        price = self._chain_settings.sol_price
        if price is None:
            if dto.amount_sol is None:
                raise InvalidPaymentAmount("amount_sol is required for solana payments.")
            return sol_to_lamports(dto.amount_sol)

        final_total = self._final_total(order, PaymentMethod.SOLANA)
        quote = sol_to_lamports(Decimal(final_total) / MINOR_UNITS_PER_MAJOR / price)
        if dto.amount_sol is None:
            return quote

        lamports = sol_to_lamports(dto.amount_sol)
        tolerance = self._chain_settings.quote_tolerance_percent
        floor = quote * (100 - tolerance) // 100
        if lamports < floor:
            logger.warning(
                "payment.solana.amount_below_quote",
                order_id=order.order_id,
                lamports=lamports,
                quote=quote,
            )
            raise InvalidPaymentAmount(
                f"amount_sol {dto.amount_sol} is below the quoted "
                f"{Decimal(quote) / LAMPORTS_PER_SOL} SOL for order {order.order_id}."
            )
        return lamports

    @staticmethod
    def _ensure_supersedable(payment: Optional[Payment]) -> None:
        if payment is None or payment.status in SUPERSEDABLE_STATES:
            return
        if payment.status == PaymentStatus.SUCCESS:
            raise PaymentAlreadyCompleted("This order has already been paid.")
        raise InvalidPaymentState(
            "A payment for this order is being verified; try again later."
        )
