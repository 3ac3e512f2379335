"""Ticket DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.tickets.constants import (
    MAX_NOTE_LENGTH,
    MAX_SUBJECT_LENGTH,
    TicketCategory,
    TicketPriority,
)
from modules.tickets.models import Ticket

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OpenTicketSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=16)
    subject = serializers.CharField(max_length=MAX_SUBJECT_LENGTH, trim_whitespace=True)
    priority = serializers.ChoiceField(
        choices=TicketPriority.choices, default=TicketPriority.MEDIUM
    )
    category = serializers.ChoiceField(
        choices=TicketCategory.choices, default=TicketCategory.GENERAL
    )


class AssignTicketSerializer(serializers.Serializer):
    staff_id = serializers.IntegerField(min_value=1)


class TicketStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=10)


class TicketNoteSerializer(serializers.Serializer):
    note = serializers.CharField(max_length=MAX_NOTE_LENGTH, trim_whitespace=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class TicketSerializer(serializers.ModelSerializer):
    order_id = serializers.CharField(source="order.order_id", read_only=True)

    class Meta:
        model = Ticket
        fields = [
            "ticket_id",
            "order_id",
            "submitter_id",
            "claimed_by_id",
            "status",
            "priority",
            "category",
            "subject",
            "admin_notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
