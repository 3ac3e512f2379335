"""Ticket repositories: the interface and its Django ORM implementation."""

from modules.tickets.repositories.django_repository import TicketDjangoRepository
from modules.tickets.repositories.interfaces import ITicketRepository

__all__ = ["ITicketRepository", "TicketDjangoRepository"]
