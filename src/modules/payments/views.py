"""Payment API views.

Thin adapters over ``PaymentService`` and ``PaymentReconciler``.  Domain
exceptions are translated into HTTP status codes here.

The Stripe webhook endpoint is unauthenticated: authenticity comes from
the ``Stripe-Signature`` header, verified against the raw request body.
"""

from __future__ import annotations

import structlog
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import PaymentStatus
from modules.payments.dtos import InitiatePaymentDTO
from modules.payments.exceptions import (
    CardGatewayError,
    InvalidPaymentAmount,
    InvalidPaymentState,
    InvalidWebhookSignature,
    MalformedWebhookPayload,
    PaymentAlreadyCompleted,
    PaymentForbidden,
    PaymentNotFound,
    SignatureAlreadyUsed,
)
from modules.payments.models import Payment
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.serializers import (
    ConfirmChainPaymentSerializer,
    InitiatePaymentSerializer,
    PaymentSerializer,
)
from modules.payments.tasks import resolve_chain_payment
from modules.payments.wiring import (
    build_payment_reconciler,
    build_payment_service,
    build_webhook_reconciler,
)

logger = structlog.get_logger(__name__)


class PaymentViewSet(GenericViewSet):
    """ViewSet for payment initiation and on-chain confirmation."""

    queryset = Payment.objects.all()
    serializer_class = PaymentSerializer
    lookup_field = "order_id"

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "payment_initiation" if self.action == "create" else None
        return super().get_throttles()

    def create(self, request: Request) -> Response:
        """POST /api/v1/payments/"""
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            initiation = build_payment_service().initiate_payment(
                InitiatePaymentDTO(
                    order_id=data["order_id"],
                    method=data["method"],
                    amount_sol=data.get("amount_sol"),
                ),
                actor=Actor.from_user(request.user),
            )
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except PaymentForbidden as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        except InvalidPaymentAmount as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except InvalidPaymentState as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except CardGatewayError:
            return Response(
                {"detail": "The card processor is unavailable, try again later."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(initiation.model_dump(), status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, order_id: str | None = None) -> Response:
        """GET /api/v1/payments/{order_id}/"""
        actor = Actor.from_user(request.user)
        payment = PaymentDjangoRepository().get_by_id(order_id or "")
        if payment is None or (
            not actor.is_staff and payment.order.owner_id != actor.id
        ):
            return Response(
                {"detail": "Payment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"], url_path="confirm-chain")
    def confirm_chain(self, request: Request, order_id: str | None = None) -> Response:
        """POST /api/v1/payments/{order_id}/confirm-chain/

        Records the claimed signature, then verification continues on a
        worker.  Returns 202 with the payment in ``processing``.
        """
        serializer = ConfirmChainPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor = Actor.from_user(request.user)
        repository = PaymentDjangoRepository()
        payment = repository.get_by_id(order_id or "")
        if payment is None or payment.order.owner_id != actor.id:
            return Response(
                {"detail": "Payment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        try:
            payment = build_payment_reconciler().record_chain_claim(
                payment.order.order_id, serializer.validated_data["tx_signature"]
            )
        except PaymentNotFound:
            return Response(
                {"detail": "Payment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except SignatureAlreadyUsed as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except PaymentAlreadyCompleted as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except InvalidPaymentState as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        if payment.status == PaymentStatus.PROCESSING:
            resolve_chain_payment.delay(payment.order.order_id)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_202_ACCEPTED)


class StripeWebhookView(APIView):
    """POST /api/v1/payments/webhooks/stripe/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> Response:
        signature_header = request.headers.get("Stripe-Signature", "")
        try:
            outcome = build_webhook_reconciler().handle_webhook(
                request.body, signature_header
            )
        except InvalidWebhookSignature:
            return Response(
                {"detail": "Invalid signature."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except MalformedWebhookPayload:
            return Response(
                {"detail": "Invalid payload."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response({"received": True, "handled": outcome.handled})
