"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist."""


class OwnerNotFound(Exception):
    """The user an order is being created for does not exist."""


class InvalidOrderStatus(Exception):
    """An unknown status or an invalid status transition was requested."""


class OrderForbidden(Exception):
    """The actor is not allowed to perform this order operation."""


class UsageLimitExceeded(Exception):
    """The (owner, cart_url) pair reached its total or active order limit.

    ``kind`` is ``"total"`` or ``"active"`` so callers can tell the two
    limits apart.
    """

    def __init__(self, message: str, kind: str, limit: int) -> None:
        super().__init__(message)
        self.kind = kind
        self.limit = limit
