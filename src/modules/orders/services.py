"""Order service layer (Use Cases).

``OrderLedger`` owns the Order lifecycle.  All write operations are
atomic; the ledger defines the unit-of-work boundary and publishes
notifications only after that boundary has committed.

Business rules enforced:
- Money is stored as integer minor units; the per-rail discount table is
  computed once at creation time.
- At most ``ORDER_MAX_USES_PER_CART`` orders total and
  ``ORDER_MAX_ACTIVE_PER_CART`` active orders per (owner, cart_url),
  counted while holding a lock on the owner row.
- Status transitions follow ``VALID_TRANSITIONS``; terminal states reject
  every transition.
- ``PLACED`` is reached only through the system actor (payment success or
  ticket resolution); ``CANCELLED`` / ``REFUNDED`` require staff.
- The legacy ``DELIVERED`` value is normalized to ``PLACED`` on every path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog
from django.conf import settings
from django.db import transaction

from modules.orders.constants import (
    STAFF_ONLY_TARGETS,
    OrderStatus,
    normalize_order_status,
)
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderForbidden,
    OrderNotFound,
    OwnerNotFound,
    UsageLimitExceeded,
)
from modules.orders.pricing import compute_pricing_options, to_minor_units

if TYPE_CHECKING:
    from modules.core.actors import Actor
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class OrderLedger:
    """Application service for Order use-cases.

    Receives its repository and event bus via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: IEventBus,
    ) -> None:
        self._order_repo = order_repository
        self._event_bus = event_bus

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a PENDING order from a priced cart.

        Raises:
            OwnerNotFound: the owner does not exist.
            UsageLimitExceeded: the (owner, cart_url) limits are reached.
        """
        log = logger.bind(owner_id=dto.owner_id, cart_url=dto.cart_url)
        cart = dto.priced_cart

        subtotal = to_minor_units(cart.subtotal)
        delivery_fee = to_minor_units(cart.delivery_fee)
        fees = to_minor_units(cart.fees)
        gross = subtotal + delivery_fee
        pricing_options = compute_pricing_options(
            gross, settings.PAYMENT_DISCOUNT_PERCENT
        )
        items = [
            {
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": to_minor_units(item.unit_price),
                "image_url": item.image_url,
            }
            for item in cart.items
        ]

        with transaction.atomic():
            if not self._order_repo.lock_owner(dto.owner_id):
                raise OwnerNotFound(f"User {dto.owner_id} not found.")

            total_count, active_count = self._order_repo.count_for_cart(
                dto.owner_id, dto.cart_url
            )
            max_total = settings.ORDER_MAX_USES_PER_CART
            max_active = settings.ORDER_MAX_ACTIVE_PER_CART
            if total_count >= max_total:
                log.warning("order.usage_limit_reached", kind="total", count=total_count)
                raise UsageLimitExceeded(
                    f"You have already used this link {max_total} times. "
                    "Maximum usage limit reached.",
                    kind="total",
                    limit=max_total,
                )
            if active_count >= max_active:
                log.warning(
                    "order.usage_limit_reached", kind="active", count=active_count
                )
                raise UsageLimitExceeded(
                    f"You already have {max_active} active orders with this link. "
                    "Maximum active orders limit reached.",
                    kind="active",
                    limit=max_active,
                )

            order = self._order_repo.create(
                {
                    "owner_id": dto.owner_id,
                    "cart_url": dto.cart_url,
                    "subtotal": subtotal,
                    "delivery_fee": delivery_fee,
                    "fees": fees,
                    "total": subtotal + delivery_fee + fees,
                    "currency": cart.currency,
                    "items": items,
                    "pricing_options": pricing_options,
                }
            )
            self._order_repo.add_history(
                order,
                new_status=OrderStatus.PENDING,
                user_id=dto.owner_id,
                notes="Order created",
            )

        log.info("order.created", order_id=order.order_id, total=order.total)
        return order

    def transition_status(
        self,
        order_id: str,
        new_status: str,
        actor: Optional[Actor],
        notes: str = "",
    ) -> Order:
        """Move an order to ``new_status``.

        ``actor=None`` is the system itself.  PLACED -> PLACED is a no-op.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: unknown status or illegal transition.
            OrderForbidden: the actor may not request this transition.
        """
        target = normalize_order_status((new_status or "").upper())
        if target not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown order status: {new_status}.")

        if target in STAFF_ONLY_TARGETS and (actor is None or not actor.is_staff):
            raise OrderForbidden(f"Only staff may move an order to {target}.")
        if target == OrderStatus.PLACED and actor is not None:
            raise OrderForbidden(
                "Orders are placed by payment confirmation or ticket resolution."
            )

        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found.")

            old_status = order.status
            log = logger.bind(
                order_id=order_id, current_status=old_status, new_status=target
            )
            if old_status == target == OrderStatus.PLACED:
                log.info("order.transition_noop")
                return order
            if not order.can_transition_to(target):
                log.warning("order.invalid_transition")
                raise InvalidOrderStatus(
                    f"Cannot transition from {old_status} to {target}."
                )

            order.status = target
            self._order_repo.save(order)
            self._order_repo.add_history(
                order,
                new_status=target,
                old_status=old_status,
                user_id=actor.id if actor else None,
                notes=notes,
            )

        log.info("order.status_updated")
        self._event_bus.publish(
            OrderStatusChanged(
                order_id=order.order_id, old_status=old_status, new_status=target
            )
        )
        return order

    def mark_placed(self, order_id: str, notes: str = "") -> Order:
        """Advance a PENDING order to PLACED on behalf of the system.

        Idempotent: an order that is already PLACED is returned unchanged.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: the order is CANCELLED or REFUNDED.
        """
        with transaction.atomic():
            advanced = self._order_repo.advance_status(
                order_id, OrderStatus.PENDING, OrderStatus.PLACED
            )
            order = self._order_repo.get_by_id(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found.")
            if advanced:
                self._order_repo.add_history(
                    order,
                    new_status=OrderStatus.PLACED,
                    old_status=OrderStatus.PENDING,
                    notes=notes,
                )
            elif order.is_terminal:
                raise InvalidOrderStatus(
                    f"Cannot place order {order_id} in status {order.status}."
                )

        if advanced:
            logger.info("order.placed", order_id=order_id)
            self._event_bus.publish(
                OrderStatusChanged(
                    order_id=order_id,
                    old_status=OrderStatus.PENDING,
                    new_status=OrderStatus.PLACED,
                )
            )
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by its public id.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order
