"""User look-ups for services that need another user's role.

Services receive the acting ``Actor`` from the API layer; this repository
resolves *other* users (e.g. the staff member a ticket is assigned to).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from django.contrib.auth import get_user_model

from modules.core.actors import Actor


class IUserRepository(ABC):
    @abstractmethod
    def get_actor(self, user_id: int) -> Optional[Actor]:
        """Return the active user as an ``Actor``, or ``None``."""


class UserDjangoRepository(IUserRepository):
    def get_actor(self, user_id: int) -> Optional[Actor]:
        user = (
            get_user_model()
            .objects.filter(pk=user_id, is_active=True)
            .only("pk", "is_staff", "is_superuser")
            .first()
        )
        return Actor.from_user(user) if user else None
