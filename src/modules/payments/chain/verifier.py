"""On-chain payment verification.

``ChainVerifier`` is a leaf: it reads and writes only the Payment row and
reports a ``VerificationResult``.  Order and Ticket side effects belong to
the ``PaymentReconciler``.

Flow for a solana payment:

1. ``record_claim`` stores the claimed signature and moves the payment from
   ``pending`` to ``processing`` in one conditional write.
2. ``resolve`` polls the chain within a bounded retry budget, then checks
   memo, recipient and balance delta against the values stored at
   initiation.  Every rejection persists a ``failure_reason``; an exhausted
   budget is a ``failed`` outcome, never an indefinite ``processing``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import structlog
from django.db import IntegrityError, transaction

from modules.payments.chain.memo import extract_memos, memo_mismatch_reason
from modules.payments.constants import PaymentMethod, PaymentStatus
from modules.payments.exceptions import (
    ChainRpcError,
    InvalidPaymentState,
    PaymentAlreadyCompleted,
    PaymentMethodMismatch,
    PaymentNotFound,
    SignatureAlreadyUsed,
)

if TYPE_CHECKING:
    from modules.payments.chain.client import IChainClient
    from modules.payments.chain.dtos import ParsedTransaction
    from modules.payments.chain.settings import ChainSettings
    from modules.payments.models import Payment
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    order_id: str
    status: str
    failure_reason: str = ""
    amount_received: Optional[int] = None
    # True only for the call that moved the payment into its current status.
    transitioned: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


class ChainVerifier:
    def __init__(
        self,
        payment_repository: IPaymentRepository,
        client: IChainClient,
        chain_settings: ChainSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._payment_repo = payment_repository
        self._client = client
        self._settings = chain_settings
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def verify(self, order_id: str, signature: str) -> VerificationResult:
        """Record the claim and resolve it synchronously."""
        self.record_claim(order_id, signature)
        return self.resolve(order_id)

    def record_claim(self, order_id: str, signature: str) -> Payment:
        """Attach ``signature`` to the payment and mark it ``processing``.

        Re-submitting the same signature is idempotent.

        Raises:
            PaymentNotFound: the order has no payment.
            PaymentMethodMismatch: the payment is not a solana payment.
            SignatureAlreadyUsed: another payment already holds the signature.
            PaymentAlreadyCompleted: the payment succeeded with another signature.
            InvalidPaymentState: another verification is in progress, or the
                attempt failed and must be re-initiated.
        """
        signature = (signature or "").strip()
        if not signature:
            raise ValueError("A transaction signature is required.")

        log = logger.bind(order_id=order_id, tx_signature=signature)
        try:
            with transaction.atomic():
                claimed = self._payment_repo.claim_signature(order_id, signature)
        except IntegrityError as exc:
            log.warning("payment.chain.signature_reused")
            raise SignatureAlreadyUsed(
                f"Signature {signature} is already attached to another payment."
            ) from exc

        payment = self._payment_repo.get_by_id(order_id)
        if payment is None:
            raise PaymentNotFound(f"No payment for order {order_id}.")
        if claimed:
            log.info("payment.chain.claim_recorded")
            return payment

        if payment.method != PaymentMethod.SOLANA:
            raise PaymentMethodMismatch(
                f"Payment for order {order_id} is a {payment.method} payment."
            )
        same_signature = payment.tx_signature == signature
        if payment.status == PaymentStatus.SUCCESS:
            if same_signature:
                return payment
            raise PaymentAlreadyCompleted(f"Payment for order {order_id} succeeded.")
        if payment.status == PaymentStatus.PROCESSING:
            if same_signature:
                return payment
            raise InvalidPaymentState(
                f"Payment for order {order_id} is already being verified."
            )
        raise InvalidPaymentState(
            f"Payment for order {order_id} is {payment.status}; start a new attempt."
        )

    def resolve(self, order_id: str) -> VerificationResult:
        """Drive a ``processing`` payment to ``success`` or ``failed``.

        Resolved payments are reported as they are, without touching the chain.
        """
        payment = self._payment_repo.get_by_id(order_id)
        if payment is None:
            raise PaymentNotFound(f"No payment for order {order_id}.")
        if payment.status != PaymentStatus.PROCESSING:
            return self._current(payment)

        signature = payment.tx_signature or ""
        log = logger.bind(order_id=order_id, tx_signature=signature)

        parsed, reason = self._poll(signature, log)
        if parsed is None:
            return self._fail(order_id, reason, log)

        reason = self._check(payment, parsed)
        if reason:
            return self._fail(order_id, reason, log)

        index = parsed.account_index(payment.recipient)
        received = parsed.balance_delta(index) if index is not None else None
        transitioned = self._payment_repo.mark_success(
            order_id,
            amount_received=received,
            expected_status=PaymentStatus.PROCESSING,
        )
        if not transitioned:
            log.warning("payment.chain.resolved_concurrently")
            return self._current(self._payment_repo.get_by_id(order_id) or payment)

        log.info("payment.chain.verified", amount_received=received)
        return VerificationResult(
            order_id=order_id,
            status=PaymentStatus.SUCCESS,
            amount_received=received,
            transitioned=True,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _poll(
        self, signature: str, log: structlog.stdlib.BoundLogger
    ) -> tuple[Optional[ParsedTransaction], str]:
        attempts = self._settings.max_attempts
        last_error: Optional[ChainRpcError] = None

        for attempt in range(1, attempts + 1):
            try:
                status = self._client.get_signature_status(signature)
                if status is not None and status.err is not None:
                    return None, f"transaction failed on chain: {status.err}"
                parsed = self._client.get_parsed_transaction(signature)
                if parsed is not None:
                    return parsed, ""
                log.info("payment.chain.retry", attempt=attempt, max_attempts=attempts)
            except ChainRpcError as exc:
                last_error = exc
                log.warning(
                    "payment.chain.retry",
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )
            if attempt < attempts:
                self._sleep(self._settings.retry_delay)

        reason = f"transaction not found after {attempts} attempts"
        if last_error is not None:
            reason = f"{reason} (last error: {last_error})"
        return None, reason

    @staticmethod
    def _check(payment: Payment, parsed: ParsedTransaction) -> str:
        """Return a failure reason, or an empty string if the payment is valid."""
        if parsed.meta is not None and parsed.meta.err is not None:
            return f"transaction failed on chain: {parsed.meta.err}"

        reason = memo_mismatch_reason(extract_memos(parsed), payment.reference)
        if reason:
            return reason

        index = parsed.account_index(payment.recipient)
        if index is None:
            return (
                f"recipient not present: {payment.recipient} is not an account "
                "of the transaction"
            )

        delta = parsed.balance_delta(index)
        if delta is None or delta < payment.amount:
            return (
                f"insufficient amount: recipient received {delta or 0} lamports "
                f"but expected {payment.amount}"
            )
        return ""

    def _fail(
        self, order_id: str, reason: str, log: structlog.stdlib.BoundLogger
    ) -> VerificationResult:
        transitioned = self._payment_repo.mark_failed(
            order_id, reason, expected_status=PaymentStatus.PROCESSING
        )
        if not transitioned:
            log.warning("payment.chain.resolved_concurrently", reason=reason)
            payment = self._payment_repo.get_by_id(order_id)
            if payment is not None:
                return self._current(payment)
        log.warning("payment.chain.rejected", reason=reason)
        return VerificationResult(
            order_id=order_id,
            status=PaymentStatus.FAILED,
            failure_reason=reason,
            transitioned=transitioned,
        )

    @staticmethod
    def _current(payment: Payment) -> VerificationResult:
        return VerificationResult(
            order_id=payment.order.order_id,
            status=payment.status,
            failure_reason=payment.failure_reason,
            amount_received=payment.amount_received,
        )
