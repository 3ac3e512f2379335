"""Ticket domain constants."""

from django.db import models


class TicketStatus(models.TextChoices):
    OPEN = "OPEN", "Open"
    RESOLVED = "RESOLVED", "Resolved"
    CLOSED = "CLOSED", "Closed"
    CANCELLED = "CANCELLED", "Cancelled"


class TicketPriority(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    URGENT = "URGENT", "Urgent"


class TicketCategory(models.TextChoices):
    GENERAL = "GENERAL", "General"
    PAYMENT = "PAYMENT", "Payment"
    DELIVERY = "DELIVERY", "Delivery"
    REFUND = "REFUND", "Refund"


VALID_TRANSITIONS: dict[str, set[str]] = {
    TicketStatus.OPEN: {
        TicketStatus.RESOLVED,
        TicketStatus.CLOSED,
        TicketStatus.CANCELLED,
    },
    TicketStatus.RESOLVED: set(),
    TicketStatus.CLOSED: set(),
    TicketStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {
    TicketStatus.RESOLVED,
    TicketStatus.CLOSED,
    TicketStatus.CANCELLED,
}

TICKET_ID_PREFIX = "TK"
TICKET_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TICKET_ID_LENGTH = 6
TICKET_ID_MAX_RETRIES = 5

MAX_NOTE_LENGTH = 2000
MAX_SUBJECT_LENGTH = 200
