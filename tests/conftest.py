import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest

from django.conf import settings as django_settings
from django.contrib.auth import get_user_model
from django.core.cache import cache

from rest_framework.test import APIClient

from modules.core.repositories.users import UserDjangoRepository
from modules.orders.dtos import CreateOrderDTO, PricedCartDTO, PricedCartItemDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderLedger
from modules.payments.chain.dtos import ParsedTransaction
from modules.payments.chain.settings import ChainSettings
from modules.payments.chain.verifier import ChainVerifier
from modules.payments.gateways import CardIntent
from modules.payments.models import Payment
from modules.payments.reconciler import PaymentReconciler
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.services import PaymentService
from modules.payments.webhooks import StripeWebhookReconciler
from modules.tickets.repositories.django_repository import TicketDjangoRepository
from modules.tickets.services import TicketCoordinator

User = get_user_model()


class RecordingEventBus:
    """Event bus double that keeps every published event in order."""

    def __init__(self):
        self.published = []

    def subscribe(self, event_class, handler):
        pass

    def publish(self, event):
        self.published.append(event)

    def names(self):
        return [event.event_name for event in self.published]

    def of(self, name):
        return [event for event in self.published if event.event_name == name]


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _local_cache(settings):
    """Replace Redis with an in-process cache so tests need no server."""
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "cart-checkout-tests",
        }
    }
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def owner():
    return User.objects.create_user(username="owner", password="testpass123")


@pytest.fixture()
def other_user():
    return User.objects.create_user(username="stranger", password="testpass123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="staff", password="testpass123", is_staff=True
    )


@pytest.fixture()
def second_staff_user():
    return User.objects.create_user(
        username="staff2", password="testpass123", is_staff=True
    )


@pytest.fixture()
def admin_user():
    return User.objects.create_superuser(
        username="admin", password="testpass123", email="admin@example.com"
    )


# ---------------------------------------------------------------------------
# Services wired against the test database and a recording bus
# ---------------------------------------------------------------------------


@pytest.fixture()
def bus():
    return RecordingEventBus()


@pytest.fixture()
def ledger(bus):
    return OrderLedger(order_repository=OrderDjangoRepository(), event_bus=bus)


@pytest.fixture()
def coordinator(ledger, bus):
    return TicketCoordinator(
        ticket_repository=TicketDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        user_repository=UserDjangoRepository(),
        order_ledger=ledger,
        event_bus=bus,
    )


@pytest.fixture()
def payment_repository():
    return PaymentDjangoRepository()


@pytest.fixture()
def make_order(ledger, owner):
    """Factory: create a PENDING order (subtotal 25.00 by default)."""

    def _make(
        user=None,
        cart_url="https://shop.example.com/cart/abc",
        subtotal="25.00",
        delivery_fee="0",
        fees="0",
    ):
        return ledger.create_order(
            CreateOrderDTO(
                owner_id=(user or owner).pk,
                cart_url=cart_url,
                priced_cart=PricedCartDTO(
                    subtotal=Decimal(subtotal),
                    delivery_fee=Decimal(delivery_fee),
                    fees=Decimal(fees),
                    items=[
                        PricedCartItemDTO(
                            name="Burrito bowl",
                            quantity=1,
                            unit_price=Decimal(subtotal),
                        )
                    ],
                ),
            )
        )

    return _make


# ---------------------------------------------------------------------------
# Stripe webhooks
# ---------------------------------------------------------------------------


@pytest.fixture()
def stripe_event():
    """Factory: build a PaymentIntent event body as Stripe sends it."""

    def _build(
        event_type="payment_intent.succeeded",
        intent_id="pi_test_123",
        order_id=None,
        amount=2500,
        failure_message=None,
    ):
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount,
            "amount_received": amount if event_type.endswith("succeeded") else 0,
            "currency": "usd",
            "metadata": {"order_id": order_id} if order_id else {},
        }
        if failure_message:
            intent["last_payment_error"] = {"message": failure_message}
        return {
            "id": f"evt_{intent_id}_{event_type.rsplit('.', 1)[-1]}",
            "object": "event",
            "type": event_type,
            "data": {"object": intent},
        }

    return _build


@pytest.fixture()
def sign_stripe_payload():
    """Factory: serialize an event and compute a valid Stripe-Signature."""

    def _sign(event, secret=None, timestamp=None):
        if isinstance(event, bytes):
            payload = event
        else:
            payload = json.dumps(event).encode("utf-8")
        timestamp = timestamp or int(time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(
            (secret or django_settings.STRIPE_WEBHOOK_SECRET).encode("utf-8"),
            signed,
            hashlib.sha256,
        ).hexdigest()
        return payload, f"t={timestamp},v1={digest}"

    return _sign


# ---------------------------------------------------------------------------
# Solana chain
# ---------------------------------------------------------------------------

PAYER = "PayerPubKey11111111111111111111111111111111"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
MEMO_PROGRAM = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"


class FakeChainClient:
    """Scripted ``IChainClient``: replays queued responses per method.

    Each queue item is a value to return or an exception to raise; the last
    item repeats once the queue is exhausted.
    """

    def __init__(self, statuses=None, transactions=None):
        self.statuses = list(statuses or [None])
        self.transactions = list(transactions or [None])
        self.calls = []

    def _next(self, queue):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get_signature_status(self, signature):
        self.calls.append(("status", signature))
        return self._next(self.statuses)

    def get_parsed_transaction(self, signature):
        self.calls.append(("transaction", signature))
        return self._next(self.transactions)


@pytest.fixture()
def chain_recipient():
    return django_settings.SOLANA_RECIPIENT


@pytest.fixture()
def rpc_transaction(chain_recipient):
    """Factory: a ``getTransaction`` (jsonParsed) result paying the recipient."""

    def _build(lamports=1_000_000_000, memo=None, recipient=None, err=None, memo_ix=None):
        recipient = recipient or chain_recipient
        instructions = [
            {
                "program": "system",
                "programId": SYSTEM_PROGRAM,
                "parsed": {
                    "type": "transfer",
                    "info": {
                        "source": PAYER,
                        "destination": recipient,
                        "lamports": lamports,
                    },
                },
            }
        ]
        if memo_ix is not None:
            instructions.append(memo_ix)
        elif memo is not None:
            instructions.append(
                {"program": "spl-memo", "programId": MEMO_PROGRAM, "parsed": memo}
            )
        return {
            "slot": 250_000_000,
            "meta": {
                "err": err,
                "fee": 5000,
                "preBalances": [5_000_000_000, 0, 1],
                "postBalances": [5_000_000_000 - lamports - 5000, lamports, 1],
            },
            "transaction": {
                "message": {
                    "accountKeys": [
                        {"pubkey": PAYER, "signer": True, "writable": True},
                        {"pubkey": recipient, "signer": False, "writable": True},
                        {"pubkey": SYSTEM_PROGRAM, "signer": False, "writable": False},
                    ],
                    "instructions": instructions,
                }
            },
        }

    return _build


@pytest.fixture()
def parsed_transaction(rpc_transaction):
    """Factory: same as ``rpc_transaction`` but parsed into the DTO."""

    def _build(**kwargs):
        return ParsedTransaction.from_rpc(rpc_transaction(**kwargs))

    return _build


@pytest.fixture()
def fake_chain_client():
    return FakeChainClient


@pytest.fixture()
def make_payment(make_order, chain_recipient):
    """Factory: attach a Payment row to an order (solana by default)."""

    def _make(
        order=None,
        method="solana",
        status="pending",
        amount=1_000_000_000,
        reference="7d9f6c3e-memo-ref",
        **fields,
    ):
        order = order or make_order()
        if method == "solana":
            fields.setdefault("recipient", chain_recipient)
            fields.setdefault("reference", reference)
        currency = {"solana": "SOL", "token": "USDC"}.get(method, order.currency)
        return Payment.objects.create(
            order=order,
            method=method,
            status=status,
            amount=amount,
            currency=currency,
            **fields,
        )

    return _make


# ---------------------------------------------------------------------------
# Payment services wired against the recording bus
# ---------------------------------------------------------------------------


class FakeCardGateway:
    """``ICardGateway`` double that hands out sequential intents."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def create_intent(self, amount, currency, metadata):

        self.calls.append({"amount": amount, "currency": currency, "metadata": metadata})
        if self.error is not None:
            raise self.error
        number = len(self.calls)
        return CardIntent(id=f"pi_fake_{number}", client_secret=f"pi_fake_{number}_secret_x")


@pytest.fixture()
def card_gateway():
    return FakeCardGateway()


@pytest.fixture()
def make_reconciler(payment_repository, ledger, coordinator, bus, chain_recipient):
    """Factory: a PaymentReconciler over a scripted chain client."""

    def _make(chain_client=None, webhook_secret=None):
        chain_settings = ChainSettings(
            rpc_url="http://solana.test",
            recipient=chain_recipient,
            max_attempts=2,
            retry_delay=0,
        )
        return PaymentReconciler(
            payment_repository=payment_repository,
            order_ledger=ledger,
            ticket_coordinator=coordinator,
            event_bus=bus,
            chain_verifier=ChainVerifier(
                payment_repository=payment_repository,
                client=chain_client or FakeChainClient(),
                chain_settings=chain_settings,
                sleep=lambda _: None,
            ),
            webhook_reconciler=StripeWebhookReconciler(
                payment_repository=payment_repository,
                order_repository=OrderDjangoRepository(),
                webhook_secret=webhook_secret or django_settings.STRIPE_WEBHOOK_SECRET,
            ),
        )

    return _make


@pytest.fixture()
def payment_service(payment_repository, card_gateway, make_reconciler, chain_recipient):

    return PaymentService(
        payment_repository=payment_repository,
        order_repository=OrderDjangoRepository(),
        card_gateway=card_gateway,
        chain_settings=ChainSettings(rpc_url="http://solana.test", recipient=chain_recipient),
        reconciler=make_reconciler(),
    )
