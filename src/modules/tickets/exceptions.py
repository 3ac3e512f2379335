"""Ticket domain exceptions.

Raised by ``TicketCoordinator``; the API layer (Views) translates them
into HTTP responses.
"""

from __future__ import annotations


class TicketNotFound(Exception):
    """The requested ticket does not exist."""


class TicketAlreadyClaimed(Exception):
    """Another staff member already owns the ticket."""


class TicketForbidden(Exception):
    """The actor may not perform this ticket operation."""


class InvalidTicketStatus(Exception):
    """Unknown status, or the ticket's state does not allow the operation."""


class AssigneeNotFound(Exception):
    """The user a ticket is being assigned to does not exist."""


class InvalidTicketNote(ValueError):
    """An empty or oversized admin note."""
