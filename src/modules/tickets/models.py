"""Ticket model.

A ticket is the human-support unit of work for one paid order.  The
one-to-one ``order`` relation makes ticket creation idempotent; the
``claimed_by`` column is the staff ownership written by compare-and-set.
"""

from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel
from modules.tickets.constants import (
    MAX_SUBJECT_LENGTH,
    TERMINAL_STATES,
    TICKET_ID_ALPHABET,
    TICKET_ID_LENGTH,
    TICKET_ID_PREFIX,
    VALID_TRANSITIONS,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)


class Ticket(BaseModel):
    ticket_id: models.CharField = models.CharField(
        max_length=16, unique=True, editable=False
    )
    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="ticket",
    )
    submitter: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="submitted_tickets",
    )
    claimed_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="claimed_tickets",
    )
    status: models.CharField = models.CharField(
        max_length=10,
        choices=TicketStatus.choices,
        default=TicketStatus.OPEN,
    )
    priority: models.CharField = models.CharField(
        max_length=10,
        choices=TicketPriority.choices,
        default=TicketPriority.MEDIUM,
    )
    category: models.CharField = models.CharField(
        max_length=10,
        choices=TicketCategory.choices,
        default=TicketCategory.GENERAL,
    )
    subject: models.CharField = models.CharField(
        max_length=MAX_SUBJECT_LENGTH, blank=True, default=""
    )
    admin_notes: models.JSONField = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "tickets"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "claimed_by"], name="tickets_status_claim_idx"),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @staticmethod
    def generate_ticket_id() -> str:
        """Generate a human-shareable ticket id: ``TK-XXXXXX``."""
        suffix = "".join(
            secrets.choice(TICKET_ID_ALPHABET) for _ in range(TICKET_ID_LENGTH)
        )
        return f"{TICKET_ID_PREFIX}-{suffix}"

    def __str__(self) -> str:
        return f"{self.ticket_id} ({self.status})"
