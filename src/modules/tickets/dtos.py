"""Ticket DTOs for the Service Layer.

- ``OpenTicketDTO``: a submitter's support request for one of their orders.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.tickets.constants import MAX_SUBJECT_LENGTH, TicketCategory, TicketPriority


class OpenTicketDTO(BaseModel):
    """Immutable DTO for a submitter-opened ticket."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(min_length=1)
    subject: str = Field(min_length=1, max_length=MAX_SUBJECT_LENGTH)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: TicketCategory = TicketCategory.GENERAL

    @field_validator("subject", mode="before")
    @classmethod
    def strip_subject(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v
