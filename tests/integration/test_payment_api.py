"""Integration tests for the Payment API.

Covers:
- Initiation on each rail (card via a mocked Stripe SDK, solana, token).
- Error mapping: 400 / 403 / 404 / 409 / 502.
- Retrieve visibility.
- confirm-chain records the claim and enqueues verification (202).
"""

from __future__ import annotations

from unittest import mock

import pytest
import stripe

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.tickets.models import Ticket

pytestmark = pytest.mark.integration

PAYMENTS_URL = "/api/v1/payments/"
STRIPE_CREATE = "modules.payments.gateways.stripe.PaymentIntent.create"


@pytest.fixture()
def order(make_order):
    return make_order()


@pytest.fixture()
def owner_client(api_client, owner):
    api_client.force_authenticate(user=owner)
    return api_client


class TestInitiate:
    def test_card_returns_client_secret(self, owner_client, order):
        with mock.patch(
            STRIPE_CREATE,
            return_value={"id": "pi_api_1", "client_secret": "pi_api_1_secret_abc"},
        ) as create:
            response = owner_client.post(
                PAYMENTS_URL,
                {"order_id": order.order_id, "method": "card"},
                format="json",
            )

        assert response.status_code == 201
        assert response.data["client_secret"] == "pi_api_1_secret_abc"
        assert response.data["amount"] == 2500
        assert create.call_args.kwargs["amount"] == 2500
        assert create.call_args.kwargs["currency"] == "usd"
        assert create.call_args.kwargs["metadata"]["order_id"] == order.order_id
        assert Payment.objects.get(order=order).processor_intent_id == "pi_api_1"

    def test_card_processor_failure_returns_502(self, owner_client, order):
        with mock.patch(
            STRIPE_CREATE, side_effect=stripe.APIConnectionError("connection reset")
        ):
            response = owner_client.post(
                PAYMENTS_URL,
                {"order_id": order.order_id, "method": "card"},
                format="json",
            )

        assert response.status_code == 502
        assert not Payment.objects.filter(order=order).exists()

    def test_solana_returns_recipient_and_reference(
        self, owner_client, order, chain_recipient
    ):
        response = owner_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "solana", "amount_sol": "0.25"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["amount"] == 250_000_000
        assert response.data["currency"] == "SOL"
        assert response.data["recipient"] == chain_recipient
        assert response.data["reference"]

    def test_solana_without_amount_returns_400(self, owner_client, order):
        response = owner_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "solana"},
            format="json",
        )
        assert response.status_code == 400

    def test_token_settles_and_opens_ticket(self, owner_client, order):
        response = owner_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "token"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["status"] == PaymentStatus.SUCCESS
        assert Order.objects.get(pk=order.pk).status == OrderStatus.PLACED
        assert Ticket.objects.filter(order=order).count() == 1

    def test_unknown_method_returns_400(self, owner_client, order):
        response = owner_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "paypal"},
            format="json",
        )
        assert response.status_code == 400

    def test_foreign_order_returns_403(self, api_client, other_user, order):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "token"},
            format="json",
        )

        assert response.status_code == 403

    def test_unknown_order_returns_404(self, owner_client):
        response = owner_client.post(
            PAYMENTS_URL, {"order_id": "MC-NOPE00", "method": "token"}, format="json"
        )
        assert response.status_code == 404

    def test_paid_order_returns_409(self, owner_client, order, make_payment):
        make_payment(order=order, status=PaymentStatus.SUCCESS)

        response = owner_client.post(
            PAYMENTS_URL,
            {"order_id": order.order_id, "method": "solana", "amount_sol": "1"},
            format="json",
        )

        assert response.status_code == 409


class TestRetrieve:
    def test_owner_sees_payment(self, owner_client, make_payment, order):
        make_payment(order=order)

        response = owner_client.get(f"{PAYMENTS_URL}{order.order_id}/")

        assert response.status_code == 200
        assert response.data["order_id"] == order.order_id
        assert response.data["status"] == PaymentStatus.PENDING

    def test_other_user_gets_404(self, api_client, other_user, make_payment, order):
        make_payment(order=order)
        api_client.force_authenticate(user=other_user)

        response = api_client.get(f"{PAYMENTS_URL}{order.order_id}/")

        assert response.status_code == 404

    def test_staff_sees_any_payment(self, api_client, staff_user, make_payment, order):
        make_payment(order=order)
        api_client.force_authenticate(user=staff_user)

        assert api_client.get(f"{PAYMENTS_URL}{order.order_id}/").status_code == 200


class TestConfirmChain:
    def _confirm(self, client, order_id, signature="5VfYsig"):
        return client.post(
            f"{PAYMENTS_URL}{order_id}/confirm-chain/",
            {"tx_signature": signature},
            format="json",
        )

    def test_records_claim_and_enqueues_verification(
        self, owner_client, make_payment, order
    ):
        make_payment(order=order)

        with mock.patch("modules.payments.views.resolve_chain_payment") as task:
            response = self._confirm(owner_client, order.order_id)

        assert response.status_code == 202
        assert response.data["status"] == PaymentStatus.PROCESSING
        assert response.data["tx_signature"] == "5VfYsig"
        task.delay.assert_called_once_with(order.order_id)

    def test_resubmitting_same_signature_is_idempotent(
        self, owner_client, make_payment, order
    ):
        make_payment(order=order)

        with mock.patch("modules.payments.views.resolve_chain_payment") as task:
            first = self._confirm(owner_client, order.order_id)
            second = self._confirm(owner_client, order.order_id)

        assert first.status_code == second.status_code == 202
        assert task.delay.call_count == 2

    def test_signature_of_another_payment_returns_400(
        self, owner_client, make_order, make_payment
    ):
        first = make_order(cart_url="https://shop.example.com/cart/one")
        second = make_order(cart_url="https://shop.example.com/cart/two")
        make_payment(order=first, status=PaymentStatus.SUCCESS, tx_signature="dup")
        make_payment(order=second, reference="ref-two")

        with mock.patch("modules.payments.views.resolve_chain_payment") as task:
            response = self._confirm(owner_client, second.order_id, "dup")

        assert response.status_code == 400
        task.delay.assert_not_called()

    def test_card_payment_returns_409(self, owner_client, make_payment, order):
        make_payment(order=order, method="card", processor_intent_id="pi_x")

        with mock.patch("modules.payments.views.resolve_chain_payment"):
            response = self._confirm(owner_client, order.order_id)

        assert response.status_code == 409

    def test_other_users_payment_returns_404(
        self, api_client, other_user, make_payment, order
    ):
        make_payment(order=order)
        api_client.force_authenticate(user=other_user)

        with mock.patch("modules.payments.views.resolve_chain_payment") as task:
            response = self._confirm(api_client, order.order_id)

        assert response.status_code == 404
        task.delay.assert_not_called()
