"""Payment repository interface.

Every status change is expressed as a single conditional write so that
concurrent confirmation signals (webhook retries, chain polling, stale
sweeps) can never move a payment out of ``success``.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.models import Payment


class IPaymentRepository(IRepository["Payment"]):
    """Repository contract for payments, keyed by the public order id."""

    @abstractmethod
    def get_for_update(self, order_id: str) -> Optional[Payment]:
        """Retrieve the order's payment holding a row-level lock."""

    @abstractmethod
    def get_by_intent_id(self, intent_id: str) -> Optional[Payment]:
        """Retrieve a payment by the card processor's intent id."""

    @abstractmethod
    def get_or_create_for_order(
        self, order: Order, defaults: Dict[str, Any]
    ) -> tuple[Payment, bool]:
        """Return the order's payment, creating it from ``defaults`` if absent."""

    @abstractmethod
    def claim_signature(self, order_id: str, signature: str) -> bool:
        """Record ``signature`` and move a pending solana payment to processing.

        Raises ``IntegrityError`` if the signature is used by another payment.
        """

    @abstractmethod
    def mark_success(
        self,
        order_id: str,
        amount_received: Optional[int] = None,
        expected_status: Optional[str] = None,
        processor_intent_id: Optional[str] = None,
        settlement: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Set ``success`` unless already successful.

        With ``expected_status`` the write applies only from that status.
        ``settlement`` overrides the rail fields (method, amount, currency)
        when the money arrived on a different rail than the row records.
        Returns ``True`` only if this call performed the transition.
        """

    @abstractmethod
    def mark_failed(
        self, order_id: str, reason: str, expected_status: Optional[str] = None
    ) -> bool:
        """Set ``failed`` with ``reason``; never overwrites ``success``."""

    @abstractmethod
    def list_success_without_ticket(self, limit: int = 100) -> List[str]:
        """Order ids whose payment succeeded but that still have no ticket."""

    @abstractmethod
    def list_stale_processing(self, before: datetime, limit: int = 100) -> List[str]:
        """Order ids whose payment has been ``processing`` since before ``before``."""
