"""Integration tests for the payment Celery tasks.

Tasks are called directly (synchronously); the chain RPC client built by
the default wiring is replaced with a scripted double.
"""

from __future__ import annotations

from datetime import timedelta
from unittest import mock

import pytest
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.chain.dtos import SignatureStatus
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.payments.tasks import (
    STALE_REASON,
    fail_stale_processing,
    replay_paid_orders,
    resolve_chain_payment,
)
from modules.tickets.models import Ticket

pytestmark = pytest.mark.integration

CONFIRMED = SignatureStatus(slot=1, err=None, confirmationStatus="confirmed")


@pytest.fixture()
def chain(fake_chain_client):
    """Patch the wiring so tasks talk to a scripted chain client."""

    def _install(**script):
        client = fake_chain_client(**script)
        patcher = mock.patch(
            "modules.payments.wiring.SolanaRpcClient", return_value=client
        )
        patcher.start()
        return client

    yield _install
    mock.patch.stopall()


class TestCeleryConfig:
    def test_app_reads_django_settings(self, settings):
        from config import celery_app

        assert celery_app.main == "checkout"
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_periodic_tasks_are_scheduled(self, settings):
        scheduled = {
            entry["task"] for entry in settings.CELERY_BEAT_SCHEDULE.values()
        }
        assert scheduled == {
            "payments.replay_paid_orders",
            "payments.fail_stale_processing",
        }


class TestResolveChainPayment:
    def test_verified_payment_places_order(
        self, chain, make_payment, parsed_transaction
    ):
        payment = make_payment(
            status=PaymentStatus.PROCESSING, tx_signature="sig-task", reference="ref-task"
        )
        client = chain(
            statuses=[CONFIRMED], transactions=[parsed_transaction(memo="ref-task")]
        )

        result = resolve_chain_payment(payment.order.order_id)

        assert result["status"] == PaymentStatus.SUCCESS
        assert client.calls == [("status", "sig-task"), ("transaction", "sig-task")]
        assert Order.objects.get(pk=payment.order_id).status == OrderStatus.PLACED
        assert Ticket.objects.filter(order_id=payment.order_id).count() == 1

    def test_missing_transaction_fails_after_budget(self, chain, make_payment, settings):
        payment = make_payment(status=PaymentStatus.PROCESSING, tx_signature="sig-gone")
        client = chain()

        result = resolve_chain_payment(payment.order.order_id)

        assert result["status"] == PaymentStatus.FAILED
        assert result["failure_reason"].startswith("transaction not found after")
        statuses = [call for call in client.calls if call[0] == "status"]
        assert len(statuses) == settings.CHAIN_MAX_ATTEMPTS
        assert not Ticket.objects.exists()


class TestReplayPaidOrders:
    def test_opens_missing_tickets_only(self, chain, make_order, make_payment, coordinator):
        chain()
        orphan = make_payment(
            order=make_order(cart_url="https://shop.example.com/cart/orphan"),
            status=PaymentStatus.SUCCESS,
            tx_signature="sig-orphan",
        )
        handled = make_payment(
            order=make_order(cart_url="https://shop.example.com/cart/handled"),
            status=PaymentStatus.SUCCESS,
            tx_signature="sig-handled",
        )
        coordinator.open_for_order(handled.order.order_id)

        result = replay_paid_orders()

        assert result == {"found": 1, "replayed": 1}
        assert Ticket.objects.filter(order_id=orphan.order_id).count() == 1
        assert Order.objects.get(pk=orphan.order_id).status == OrderStatus.PLACED
        assert Ticket.objects.count() == 2

    def test_nothing_to_replay(self, chain, make_payment):
        chain()
        make_payment(status=PaymentStatus.PENDING)

        assert replay_paid_orders() == {"found": 0, "replayed": 0}


class TestFailStaleProcessing:
    def test_fails_only_stale_processing(self, chain, make_order, make_payment):
        chain()
        stale = make_payment(
            order=make_order(cart_url="https://shop.example.com/cart/stale"),
            status=PaymentStatus.PROCESSING,
            tx_signature="sig-stale",
        )
        fresh = make_payment(
            order=make_order(cart_url="https://shop.example.com/cart/fresh"),
            status=PaymentStatus.PROCESSING,
            tx_signature="sig-fresh",
        )
        Payment.objects.filter(pk=stale.pk).update(
            updated_at=timezone.now() - timedelta(hours=1)
        )

        result = fail_stale_processing()

        assert result == {"failed": 1}
        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.status == PaymentStatus.FAILED
        assert stale.failure_reason == STALE_REASON
        assert fresh.status == PaymentStatus.PROCESSING

    def test_never_touches_success(self, chain, make_payment):
        chain()
        paid = make_payment(status=PaymentStatus.SUCCESS, tx_signature="sig-paid")
        Payment.objects.filter(pk=paid.pk).update(
            updated_at=timezone.now() - timedelta(hours=1)
        )

        assert fail_stale_processing() == {"failed": 0}
        assert Payment.objects.get(pk=paid.pk).status == PaymentStatus.SUCCESS
