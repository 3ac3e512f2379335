"""Ticket API views.

Exposes the ``TicketCoordinator`` via HTTP.  Domain exceptions are
translated into HTTP status codes; the view never swallows generic
exceptions.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.tickets.dtos import OpenTicketDTO
from modules.tickets.exceptions import (
    AssigneeNotFound,
    InvalidTicketNote,
    InvalidTicketStatus,
    TicketAlreadyClaimed,
    TicketForbidden,
    TicketNotFound,
)
from modules.tickets.models import Ticket
from modules.tickets.serializers import (
    AssignTicketSerializer,
    OpenTicketSerializer,
    TicketNoteSerializer,
    TicketSerializer,
    TicketStatusSerializer,
)
from modules.tickets.wiring import build_ticket_coordinator


def _error(exc: Exception) -> Response:
    """Map a ticket domain exception to its HTTP response."""
    if isinstance(exc, TicketNotFound):
        return Response({"detail": "Ticket not found."}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, AssigneeNotFound):
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, TicketForbidden):
        return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, TicketAlreadyClaimed):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


DOMAIN_ERRORS = (
    TicketNotFound,
    AssigneeNotFound,
    TicketForbidden,
    TicketAlreadyClaimed,
    InvalidTicketStatus,
    InvalidTicketNote,
)


class TicketViewSet(GenericViewSet):
    """ViewSet for submitter and staff ticket actions."""

    queryset = Ticket.objects.all()
    serializer_class = TicketSerializer
    lookup_field = "ticket_id"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._coordinator = build_ticket_coordinator()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "ticket_claim" if self.action == "claim" else None
        return super().get_throttles()

    def create(self, request: Request) -> Response:
        """POST /api/v1/tickets/

        Returns 201 when the ticket was opened by this request, 200 when the
        order already had one.
        """
        serializer = OpenTicketSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            ticket, created = self._coordinator.open_for_submitter(
                OpenTicketDTO(**serializer.validated_data),
                Actor.from_user(request.user),
            )
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND
            )
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        return Response(
            TicketSerializer(ticket).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def retrieve(self, request: Request, ticket_id: str | None = None) -> Response:
        """GET /api/v1/tickets/{ticket_id}/"""
        actor = Actor.from_user(request.user)
        try:
            ticket = self._coordinator.get_ticket(ticket_id or "")
        except TicketNotFound as exc:
            return _error(exc)
        if not actor.is_staff and ticket.submitter_id != actor.id:
            return Response(
                {"detail": "Ticket not found."}, status=status.HTTP_404_NOT_FOUND
            )
        return Response(TicketSerializer(ticket).data)

    @action(detail=True, methods=["post"])
    def claim(self, request: Request, ticket_id: str | None = None) -> Response:
        """POST /api/v1/tickets/{ticket_id}/claim/"""
        try:
            ticket = self._coordinator.claim(
                ticket_id or "", Actor.from_user(request.user)
            )
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        return Response(TicketSerializer(ticket).data)

    @action(detail=True, methods=["post"])
    def assign(self, request: Request, ticket_id: str | None = None) -> Response:
        """POST /api/v1/tickets/{ticket_id}/assign/"""
        serializer = AssignTicketSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            ticket = self._coordinator.assign(
                ticket_id or "",
                serializer.validated_data["staff_id"],
                Actor.from_user(request.user),
            )
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        return Response(TicketSerializer(ticket).data)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request: Request, ticket_id: str | None = None) -> Response:
        """POST /api/v1/tickets/{ticket_id}/status/"""
        serializer = TicketStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            update = self._coordinator.update_status(
                ticket_id or "",
                serializer.validated_data["status"],
                Actor.from_user(request.user),
            )
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        data = dict(TicketSerializer(update.ticket).data)
        data["order_status"] = update.order_status
        return Response(data)

    @action(detail=True, methods=["post"])
    def notes(self, request: Request, ticket_id: str | None = None) -> Response:
        """POST /api/v1/tickets/{ticket_id}/notes/"""
        serializer = TicketNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            ticket = self._coordinator.add_note(
                ticket_id or "",
                serializer.validated_data["note"],
                Actor.from_user(request.user),
            )
        except DOMAIN_ERRORS as exc:
            return _error(exc)
        return Response(TicketSerializer(ticket).data, status=status.HTTP_201_CREATED)
