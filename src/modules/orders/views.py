"""Order API views.

Exposes the ``OrderLedger`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.

Order creation is driven by the cart pricing flow and has no endpoint here.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.orders.exceptions import InvalidOrderStatus, OrderForbidden, OrderNotFound
from modules.orders.models import Order
from modules.orders.serializers import OrderSerializer, TransitionStatusSerializer
from modules.orders.wiring import build_order_ledger


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderLedger`` with injected repository and event bus (DIP),
    wired by ``build_order_ledger``.
    Does **not** extend ``ModelViewSet``; all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer
    lookup_field = "order_id"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._ledger = build_order_ledger()

    def retrieve(self, request: Request, order_id: str | None = None) -> Response:
        """GET /api/v1/orders/{order_id}/"""
        actor = Actor.from_user(request.user)
        try:
            order = self._ledger.get_order(order_id or "")
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        # Hide foreign orders from regular users.
        if not actor.is_staff and order.owner_id != actor.id:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="status")
    def transition(self, request: Request, order_id: str | None = None) -> Response:
        """POST /api/v1/orders/{order_id}/status/

        Staff-only transitions (CANCELLED, REFUNDED).
        """
        serializer = TransitionStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = self._ledger.transition_status(
                order_id or "",
                data["status"],
                actor=Actor.from_user(request.user),
                notes=data["notes"],
            )
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except OrderForbidden as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_403_FORBIDDEN,
            )
        except InvalidOrderStatus as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(OrderSerializer(self._ledger.get_order(order.order_id)).data)
