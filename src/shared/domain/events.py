"""Domain event primitives shared by the orders, payments and tickets modules.

Events are immutable notifications emitted *after* the state change that
produced them is committed.  ``event_name`` is the wire name consumed by
the transport layer (socket fan-out, e-mail, ...), e.g. ``ticket.created``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict
from uuid import UUID, uuid4

_META_FIELDS = ("event_id", "occurred_on")


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base domain event (immutable)."""

    event_name: ClassVar[str] = "domain.event"

    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        """Return the event body without envelope metadata."""
        data = asdict(self)
        for meta in _META_FIELDS:
            data.pop(meta, None)
        return {key: _normalize(value) for key, value in data.items()}


def _normalize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
