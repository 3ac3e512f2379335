"""Default wiring of the Orders services."""

from __future__ import annotations

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderLedger
from shared.infrastructure.bus import event_bus


def build_order_ledger() -> OrderLedger:
    return OrderLedger(order_repository=OrderDjangoRepository(), event_bus=event_bus)
