"""Ticket URL configuration."""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.tickets.views import TicketViewSet

router = SimpleRouter(trailing_slash=True)
router.register("tickets", TicketViewSet, basename="ticket")

urlpatterns = router.urls
