"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Callers
(the Order Ledger) own the transaction boundary; the locking methods
must run inside ``transaction.atomic``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import structlog
from django.contrib.auth import get_user_model
from django.db.models import Count, Q

from modules.orders.constants import ACTIVE_STATES, normalize_order_status
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            owner_id=data["owner_id"],
            cart_url=data["cart_url"],
            subtotal=data.get("subtotal", 0),
            delivery_fee=data.get("delivery_fee", 0),
            fees=data.get("fees", 0),
            total=data.get("total", 0),
            currency=data.get("currency", "USD"),
            items=data.get("items", []),
            pricing_options=data.get("pricing_options", {}),
        )
        order.save()
        logger.info("order.persisted", order_id=order.order_id)
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order by its public ``order_id``."""
        return (
            Order.objects.select_related("owner")
            .prefetch_related("status_history")
            .filter(order_id=id)
            .first()
        )

    def get_for_update(self, order_id: str) -> Optional[Order]:
        return Order.objects.select_for_update().filter(order_id=order_id).first()

    def lock_owner(self, owner_id: int) -> bool:
        User = get_user_model()
        return (
            User.objects.select_for_update().filter(pk=owner_id).only("pk").first()
            is not None
        )

    def count_for_cart(self, owner_id: int, cart_url: str) -> Tuple[int, int]:
        counts = Order.objects.filter(owner_id=owner_id, cart_url=cart_url).aggregate(
            total=Count("id"),
            active=Count("id", filter=Q(status__in=ACTIVE_STATES)),
        )
        return counts["total"], counts["active"]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        entity.save()
        return entity

    def advance_status(self, order_id: str, from_status: str, to_status: str) -> bool:
        # QuerySet.update() bypasses OrderStatusField.pre_save.
        rows = Order.objects.filter(order_id=order_id, status=from_status).update(
            status=normalize_order_status(to_status)
        )
        return rows == 1

    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=normalize_order_status(new_status),
            user_id=user_id,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=order.order_id,
            old_status=old_status,
            new_status=history.new_status,
        )
        return history
