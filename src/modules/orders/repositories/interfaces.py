"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the Order Ledger needs:
owner locking for the usage-limit check, per-cart counting, conditional
status advances and status history tracking.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Insert a new order; ``order_id`` is generated on save."""

    @abstractmethod
    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def lock_owner(self, owner_id: int) -> bool:
        """Lock the owner's user row; return ``False`` if it does not exist.

        Serializes concurrent order creation for the same owner so the
        usage-limit count and the insert behave as one atomic step.
        """

    @abstractmethod
    def count_for_cart(self, owner_id: int, cart_url: str) -> Tuple[int, int]:
        """Return ``(total, active)`` order counts for (owner, cart_url)."""

    @abstractmethod
    def advance_status(self, order_id: str, from_status: str, to_status: str) -> bool:
        """Conditionally move ``from_status`` -> ``to_status``.

        Returns ``True`` only if this call performed the write.
        """

    @abstractmethod
    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
