"""Ticket repository interface.

``claim`` and ``assign`` are single conditional writes: the store, not
application code, decides which concurrent request wins.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.tickets.models import Ticket


class ITicketRepository(IRepository["Ticket"]):
    """Repository contract for tickets, keyed by the public ``ticket_id``."""

    @abstractmethod
    def get_for_update(self, ticket_id: str) -> Optional[Ticket]:
        """Retrieve a ticket holding a row-level lock."""

    @abstractmethod
    def get_by_order(self, order_id: str) -> Optional[Ticket]:
        """Retrieve the ticket of the order whose public id is ``order_id``."""

    @abstractmethod
    def get_or_create_for_order(
        self, order: Order, defaults: Dict[str, Any]
    ) -> tuple[Ticket, bool]:
        """Return the order's ticket, creating it from ``defaults`` if absent.

        Raises ``IntegrityError`` only when ``defaults["ticket_id"]`` collides
        with another ticket.
        """

    @abstractmethod
    def claim(self, ticket_id: str, staff_id: int) -> bool:
        """Set ``claimed_by`` if the ticket is OPEN and unclaimed."""

    @abstractmethod
    def assign(self, ticket_id: str, staff_id: int) -> bool:
        """Set ``claimed_by`` unconditionally on an OPEN ticket."""
