"""Default wiring of the Payments services.

Settings are read here, at call time, and passed down explicitly.
"""

from __future__ import annotations

from django.conf import settings

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.wiring import build_order_ledger
from modules.payments.chain.client import SolanaRpcClient
from modules.payments.chain.settings import ChainSettings
from modules.payments.chain.verifier import ChainVerifier
from modules.payments.gateways import StripeCardGateway
from modules.payments.reconciler import PaymentReconciler
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.services import PaymentService
from modules.payments.webhooks import StripeWebhookReconciler
from modules.tickets.wiring import build_ticket_coordinator
from shared.infrastructure.bus import event_bus


def build_payment_reconciler(
    chain_settings: ChainSettings | None = None,
) -> PaymentReconciler:
    chain_settings = chain_settings or ChainSettings.from_django()
    payment_repository = PaymentDjangoRepository()
    return PaymentReconciler(
        payment_repository=payment_repository,
        order_ledger=build_order_ledger(),
        ticket_coordinator=build_ticket_coordinator(),
        event_bus=event_bus,
        chain_verifier=ChainVerifier(
            payment_repository=payment_repository,
            client=SolanaRpcClient(chain_settings),
            chain_settings=chain_settings,
        ),
    )


def build_webhook_reconciler() -> PaymentReconciler:
    payment_repository = PaymentDjangoRepository()
    return PaymentReconciler(
        payment_repository=payment_repository,
        order_ledger=build_order_ledger(),
        ticket_coordinator=build_ticket_coordinator(),
        event_bus=event_bus,
        webhook_reconciler=StripeWebhookReconciler(
            payment_repository=payment_repository,
            order_repository=OrderDjangoRepository(),
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        ),
    )


def build_payment_service() -> PaymentService:
    chain_settings = ChainSettings.from_django()
    return PaymentService(
        payment_repository=PaymentDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        card_gateway=StripeCardGateway(api_key=settings.STRIPE_SECRET_KEY),
        chain_settings=chain_settings,
        reconciler=build_payment_reconciler(chain_settings),
    )
