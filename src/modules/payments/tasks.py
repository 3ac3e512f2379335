"""Background payment work.

Chain verification polls for up to ``CHAIN_MAX_ATTEMPTS`` *
``CHAIN_RETRY_DELAY_SECONDS``, so it runs on a worker, one task per
request.  The periodic tasks are the recovery path for side effects lost
after a committed payment status (worker crash, failed ticket creation).
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from celery import shared_task
from django.conf import settings
from django.utils import timezone

from modules.payments.constants import PaymentStatus
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.wiring import build_payment_reconciler

logger = structlog.get_logger(__name__)

STALE_REASON = "verification timed out before reaching a terminal state"


@shared_task(name="payments.resolve_chain_payment")
def resolve_chain_payment(order_id: str) -> dict:
    """Drive a recorded on-chain claim to ``success`` or ``failed``."""
    result = build_payment_reconciler().resolve_chain_payment(order_id)
    logger.info(
        "payment.chain.task_completed",
        order_id=order_id,
        status=result.status,
        failure_reason=result.failure_reason or None,
    )
    return {
        "order_id": order_id,
        "status": result.status,
        "failure_reason": result.failure_reason,
    }


@shared_task(name="payments.replay_paid_orders")
def replay_paid_orders(limit: int = 100) -> dict:
    """Re-run the success path for paid orders that still have no ticket."""
    order_ids = PaymentDjangoRepository().list_success_without_ticket(limit=limit)
    reconciler = build_payment_reconciler()
    replayed = 0
    for order_id in order_ids:
        try:
            reconciler.replay(order_id)
            replayed += 1
        except Exception:
            logger.exception("payment.replay_failed", order_id=order_id)
    logger.info("payment.replay_completed", found=len(order_ids), replayed=replayed)
    return {"found": len(order_ids), "replayed": replayed}


@shared_task(name="payments.fail_stale_processing")
def fail_stale_processing(limit: int = 100) -> dict:
    """Fail payments left ``processing`` past the verification timeout."""
    cutoff = timezone.now() - timedelta(
        seconds=settings.CHAIN_PROCESSING_TIMEOUT_SECONDS
    )
    repository = PaymentDjangoRepository()
    reconciler = build_payment_reconciler()
    failed = 0
    for order_id in repository.list_stale_processing(before=cutoff, limit=limit):
        if repository.mark_failed(
            order_id, STALE_REASON, expected_status=PaymentStatus.PROCESSING
        ):
            failed += 1
            logger.warning("payment.processing_timed_out", order_id=order_id)
            payment = repository.get_by_id(order_id)
            reconciler.publish_resolution(
                order_id,
                payment.method if payment else "solana",
                PaymentStatus.FAILED,
                STALE_REASON,
            )
    return {"failed": failed}
