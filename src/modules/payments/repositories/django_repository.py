"""Django ORM implementation of the Payment repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import structlog
from django.utils import timezone

from modules.orders.models import Order
from modules.payments.constants import PaymentMethod, PaymentStatus
from modules.payments.models import Payment
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentRepository):
    """Concrete Payment repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Payment]:
        """Retrieve the payment of the order whose public id is ``id``."""
        return Payment.objects.select_related("order").filter(order__order_id=id).first()

    def get_for_update(self, order_id: str) -> Optional[Payment]:
        return (
            Payment.objects.select_for_update()
            .select_related("order")
            .filter(order__order_id=order_id)
            .first()
        )

    def get_by_intent_id(self, intent_id: str) -> Optional[Payment]:
        if not intent_id:
            return None
        return (
            Payment.objects.select_related("order")
            .filter(processor_intent_id=intent_id)
            .first()
        )

    def list_success_without_ticket(self, limit: int = 100) -> List[str]:
        return list(
            Payment.objects.filter(
                status=PaymentStatus.SUCCESS, order__ticket__isnull=True
            )
            .order_by("resolved_at")
            .values_list("order__order_id", flat=True)[:limit]
        )

    def list_stale_processing(self, before: datetime, limit: int = 100) -> List[str]:
        return list(
            Payment.objects.filter(
                status=PaymentStatus.PROCESSING, updated_at__lt=before
            )
            .order_by("updated_at")
            .values_list("order__order_id", flat=True)[:limit]
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, entity: Payment) -> Payment:
        entity.save()
        return entity

    def get_or_create_for_order(
        self, order: Order, defaults: Dict[str, Any]
    ) -> tuple[Payment, bool]:
        payment, created = Payment.objects.get_or_create(order=order, defaults=defaults)
        if created:
            logger.info(
                "payment.created", order_id=order.order_id, method=payment.method
            )
        return payment, created

    def claim_signature(self, order_id: str, signature: str) -> bool:
        rows = Payment.objects.filter(
            order__order_id=order_id,
            method=PaymentMethod.SOLANA,
            status=PaymentStatus.PENDING,
        ).update(
            status=PaymentStatus.PROCESSING,
            tx_signature=signature,
            failure_reason="",
            updated_at=timezone.now(),
        )
        return rows == 1

    def mark_success(
        self,
        order_id: str,
        amount_received: Optional[int] = None,
        expected_status: Optional[str] = None,
        processor_intent_id: Optional[str] = None,
        settlement: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        queryset = Payment.objects.filter(order__order_id=order_id)
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)
        else:
            queryset = queryset.exclude(status=PaymentStatus.SUCCESS)

        now = timezone.now()
        changes: Dict[str, Any] = {
            "status": PaymentStatus.SUCCESS,
            "failure_reason": "",
            "resolved_at": now,
            "updated_at": now,
        }
        if amount_received is not None:
            changes["amount_received"] = amount_received
        if processor_intent_id:
            changes["processor_intent_id"] = processor_intent_id
        if settlement:
            changes.update(settlement)
        return queryset.update(**changes) == 1

    def mark_failed(
        self, order_id: str, reason: str, expected_status: Optional[str] = None
    ) -> bool:
        queryset = Payment.objects.filter(order__order_id=order_id).exclude(
            status=PaymentStatus.SUCCESS
        )
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)
        now = timezone.now()
        rows = queryset.update(
            status=PaymentStatus.FAILED,
            failure_reason=reason,
            resolved_at=now,
            updated_at=now,
        )
        return rows == 1
