"""Authenticated actor passed by the API layer into the services.

Services never inspect ``request.user`` directly: the view resolves an
``Actor`` (id + role) and the service applies its authorization rules.
``None`` in place of an actor means the system itself (reconciliation).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.db import models


class ActorRole(models.TextChoices):
    USER = "user", "User"
    STAFF = "staff", "Staff"
    ADMIN = "admin", "Administrator"


@dataclass(frozen=True)
class Actor:
    id: int
    role: str = ActorRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_staff(self) -> bool:
        """Staff members and administrators can both work tickets."""
        return self.role in (ActorRole.STAFF, ActorRole.ADMIN)

    @classmethod
    def from_user(cls, user: Any) -> Actor:
        if getattr(user, "is_superuser", False):
            role = ActorRole.ADMIN
        elif getattr(user, "is_staff", False):
            role = ActorRole.STAFF
        else:
            role = ActorRole.USER
        return cls(id=user.pk, role=role)
