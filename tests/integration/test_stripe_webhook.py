"""Integration tests for the Stripe webhook endpoint.

The endpoint authenticates with the ``Stripe-Signature`` header computed
over the raw body; every authentic delivery is acknowledged with 200 so
Stripe stops retrying, even when the event matches nothing.
"""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.tickets.models import Ticket

pytestmark = pytest.mark.integration

WEBHOOK_URL = "/api/v1/payments/webhooks/stripe/"


@pytest.fixture()
def post_webhook(api_client, sign_stripe_payload):
    def _post(event, secret=None, header=None):
        payload, signature = sign_stripe_payload(event, secret=secret)
        return api_client.post(
            WEBHOOK_URL,
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature if header is None else header,
        )

    return _post


@pytest.fixture()
def card_payment(make_payment):
    return make_payment(method="card", amount=2500, processor_intent_id="pi_hook")


class TestAuthentication:
    def test_missing_signature_returns_400(self, post_webhook, stripe_event):
        response = post_webhook(stripe_event(), header="")
        assert response.status_code == 400

    def test_wrong_secret_returns_400(self, post_webhook, stripe_event, card_payment):
        response = post_webhook(
            stripe_event(intent_id="pi_hook"), secret="whsec_not_ours"
        )

        assert response.status_code == 400
        card_payment.refresh_from_db()
        assert card_payment.status == PaymentStatus.PENDING

    def test_malformed_body_returns_400(self, post_webhook):
        assert post_webhook(b"not-json").status_code == 400


class TestDelivery:
    def test_success_places_order_and_opens_ticket(
        self, post_webhook, stripe_event, card_payment
    ):
        response = post_webhook(stripe_event(intent_id="pi_hook"))

        assert response.status_code == 200
        assert response.data == {"received": True, "handled": True}
        card_payment.refresh_from_db()
        assert card_payment.status == PaymentStatus.SUCCESS
        assert Order.objects.get(pk=card_payment.order_id).status == OrderStatus.PLACED
        assert Ticket.objects.filter(order_id=card_payment.order_id).count() == 1

    def test_redelivery_keeps_one_ticket(self, post_webhook, stripe_event, card_payment):
        event = stripe_event(intent_id="pi_hook")

        assert post_webhook(event).status_code == 200
        assert post_webhook(event).status_code == 200

        assert Ticket.objects.filter(order_id=card_payment.order_id).count() == 1

    def test_failure_after_success_is_ignored(
        self, post_webhook, stripe_event, card_payment
    ):
        post_webhook(stripe_event(intent_id="pi_hook"))

        response = post_webhook(
            stripe_event(
                event_type="payment_intent.payment_failed",
                intent_id="pi_hook",
                failure_message="Card declined",
            )
        )

        assert response.status_code == 200
        assert Payment.objects.get(pk=card_payment.pk).status == PaymentStatus.SUCCESS

    def test_failure_is_recorded(self, post_webhook, stripe_event, card_payment):
        response = post_webhook(
            stripe_event(
                event_type="payment_intent.payment_failed",
                intent_id="pi_hook",
                failure_message="Insufficient funds",
            )
        )

        assert response.status_code == 200
        card_payment.refresh_from_db()
        assert card_payment.status == PaymentStatus.FAILED
        assert card_payment.failure_reason == "Insufficient funds"
        assert not Ticket.objects.exists()

    def test_unknown_event_type_is_acknowledged(self, post_webhook, stripe_event):
        response = post_webhook(stripe_event(event_type="charge.refunded"))

        assert response.status_code == 200
        assert response.data["handled"] is False

    def test_unmatched_intent_is_acknowledged(self, post_webhook, stripe_event):
        response = post_webhook(stripe_event(intent_id="pi_nobody"))

        assert response.status_code == 200
        assert response.data["handled"] is False
