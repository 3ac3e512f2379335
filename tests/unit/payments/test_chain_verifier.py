"""Unit tests for ChainVerifier.

Covers:
- Claim recording: conditional pending -> processing, idempotent re-submit,
  signature reuse across payments, wrong rail / state.
- Resolution: memo, recipient and balance-delta checks with persisted
  failure reasons; bounded retry budget that always ends in a terminal state.
"""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus
from modules.payments.chain.dtos import SignatureStatus
from modules.payments.chain.settings import ChainSettings
from modules.payments.chain.verifier import ChainVerifier
from modules.payments.constants import PaymentStatus
from modules.payments.exceptions import (
    ChainRpcError,
    InvalidPaymentState,
    PaymentAlreadyCompleted,
    PaymentMethodMismatch,
    PaymentNotFound,
    SignatureAlreadyUsed,
)
from modules.payments.models import Payment
from modules.tickets.models import Ticket

pytestmark = pytest.mark.unit

REFERENCE = "7d9f6c3e-memo-ref"
ONE_SOL = 1_000_000_000
CONFIRMED = SignatureStatus(slot=1, err=None, confirmationStatus="confirmed")


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture()
def sleeper():
    return SleepRecorder()


@pytest.fixture()
def build_verifier(payment_repository, chain_recipient, sleeper):
    def _build(client, max_attempts=3):
        return ChainVerifier(
            payment_repository=payment_repository,
            client=client,
            chain_settings=ChainSettings(
                rpc_url="http://solana.test",
                recipient=chain_recipient,
                max_attempts=max_attempts,
                retry_delay=0.5,
            ),
            sleep=sleeper,
        )

    return _build


@pytest.fixture()
def payment(make_payment):
    return make_payment(amount=ONE_SOL, reference=REFERENCE)


def _reload(payment):
    return Payment.objects.select_related("order").get(pk=payment.pk)


# ---------------------------------------------------------------------------
# record_claim
# ---------------------------------------------------------------------------


class TestRecordClaim:
    def test_moves_pending_to_processing(self, payment, build_verifier, fake_chain_client):
        verifier = build_verifier(fake_chain_client())

        claimed = verifier.record_claim(payment.order.order_id, " sig-1 ")

        assert claimed.status == PaymentStatus.PROCESSING
        assert claimed.tx_signature == "sig-1"

    def test_same_signature_is_idempotent(self, payment, build_verifier, fake_chain_client):
        verifier = build_verifier(fake_chain_client())
        verifier.record_claim(payment.order.order_id, "sig-1")

        again = verifier.record_claim(payment.order.order_id, "sig-1")

        assert again.status == PaymentStatus.PROCESSING
        assert again.tx_signature == "sig-1"

    def test_other_signature_while_processing_raises(
        self, payment, build_verifier, fake_chain_client
    ):
        verifier = build_verifier(fake_chain_client())
        verifier.record_claim(payment.order.order_id, "sig-1")

        with pytest.raises(InvalidPaymentState, match="already being verified"):
            verifier.record_claim(payment.order.order_id, "sig-2")

    def test_signature_used_by_another_payment_raises(
        self, payment, make_payment, make_order, build_verifier, fake_chain_client
    ):
        other = make_payment(
            order=make_order(cart_url="https://shop.example.com/cart/other")
        )
        verifier = build_verifier(fake_chain_client())
        verifier.record_claim(payment.order.order_id, "sig-1")

        with pytest.raises(SignatureAlreadyUsed):
            verifier.record_claim(other.order.order_id, "sig-1")

        other = _reload(other)
        assert other.status == PaymentStatus.PENDING
        assert other.tx_signature is None

    def test_card_payment_raises(self, make_payment, build_verifier, fake_chain_client):
        card = make_payment(method="card", amount=2500)
        verifier = build_verifier(fake_chain_client())

        with pytest.raises(PaymentMethodMismatch):
            verifier.record_claim(card.order.order_id, "sig-1")

    def test_missing_payment_raises(self, make_order, build_verifier, fake_chain_client):
        order = make_order()
        verifier = build_verifier(fake_chain_client())

        with pytest.raises(PaymentNotFound):
            verifier.record_claim(order.order_id, "sig-1")

    def test_empty_signature_raises(self, payment, build_verifier, fake_chain_client):
        verifier = build_verifier(fake_chain_client())
        with pytest.raises(ValueError):
            verifier.record_claim(payment.order.order_id, "   ")

    def test_succeeded_payment_with_other_signature_raises(
        self, make_payment, build_verifier, fake_chain_client
    ):
        paid = make_payment(status=PaymentStatus.SUCCESS, tx_signature="sig-1")
        verifier = build_verifier(fake_chain_client())

        assert verifier.record_claim(paid.order.order_id, "sig-1").status == "success"
        with pytest.raises(PaymentAlreadyCompleted):
            verifier.record_claim(paid.order.order_id, "sig-2")

    def test_failed_payment_requires_new_attempt(
        self, make_payment, build_verifier, fake_chain_client
    ):
        failed = make_payment(status=PaymentStatus.FAILED, failure_reason="memo mismatch")
        verifier = build_verifier(fake_chain_client())

        with pytest.raises(InvalidPaymentState, match="new attempt"):
            verifier.record_claim(failed.order.order_id, "sig-9")


# ---------------------------------------------------------------------------
# resolve / verify
# ---------------------------------------------------------------------------


class TestResolve:
    def test_valid_transfer_succeeds(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(lamports=ONE_SOL, memo=REFERENCE)],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.succeeded
        assert result.transitioned
        assert result.amount_received == ONE_SOL
        stored = _reload(payment)
        assert stored.status == PaymentStatus.SUCCESS
        assert stored.amount_received == ONE_SOL
        assert stored.resolved_at is not None

    def test_overpayment_succeeds(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(lamports=2 * ONE_SOL, memo=REFERENCE)],
        )
        assert build_verifier(client).verify(payment.order.order_id, "sig-1").succeeded

    def test_underpayment_fails_with_both_amounts(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(lamports=900_000_000, memo=REFERENCE)],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.status == PaymentStatus.FAILED
        assert result.transitioned
        assert "900000000" in result.failure_reason
        assert "1000000000" in result.failure_reason
        stored = _reload(payment)
        assert stored.status == PaymentStatus.FAILED
        assert stored.failure_reason == result.failure_reason
        assert stored.failure_reason.startswith("insufficient amount")
        # The verifier never touches the order or tickets.
        assert stored.order.status == OrderStatus.PENDING
        assert not Ticket.objects.exists()

    def test_memo_mismatch_fails(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(memo="someone-else")],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason.startswith("memo mismatch")

    def test_missing_recipient_fails(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(memo=REFERENCE, recipient="AttackerKey")],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason.startswith("recipient not present")

    def test_failed_signature_status_fails(
        self, payment, build_verifier, fake_chain_client
    ):
        client = fake_chain_client(
            statuses=[SignatureStatus(err={"InstructionError": [0, "Custom"]})]
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason.startswith("transaction failed on chain")
        assert ("transaction", "sig-1") not in client.calls

    def test_failed_transaction_meta_fails(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[None],
            transactions=[parsed_transaction(memo=REFERENCE, err={"code": 1})],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.failure_reason.startswith("transaction failed on chain")

    def test_budget_exhausted_fails(
        self, payment, build_verifier, fake_chain_client, sleeper
    ):
        client = fake_chain_client(statuses=[None], transactions=[None])

        result = build_verifier(client, max_attempts=3).verify(
            payment.order.order_id, "sig-1"
        )

        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason == "transaction not found after 3 attempts"
        assert sleeper.calls == [0.5, 0.5]
        assert _reload(payment).status == PaymentStatus.FAILED

    def test_rpc_errors_are_retried(
        self, payment, build_verifier, fake_chain_client, parsed_transaction, sleeper
    ):
        client = fake_chain_client(
            statuses=[ChainRpcError("timeout"), CONFIRMED],
            transactions=[parsed_transaction(memo=REFERENCE)],
        )

        result = build_verifier(client).verify(payment.order.order_id, "sig-1")

        assert result.succeeded
        assert sleeper.calls == [0.5]

    def test_persistent_rpc_errors_end_in_failed(
        self, payment, build_verifier, fake_chain_client
    ):
        client = fake_chain_client(statuses=[ChainRpcError("node down")])

        result = build_verifier(client, max_attempts=2).verify(
            payment.order.order_id, "sig-1"
        )

        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason.startswith("transaction not found after 2 attempts")
        assert "node down" in result.failure_reason

    def test_resolved_payment_is_reported_without_chain_calls(
        self, make_payment, build_verifier, fake_chain_client
    ):
        paid = make_payment(
            status=PaymentStatus.SUCCESS, tx_signature="sig-1", amount_received=ONE_SOL
        )
        client = fake_chain_client()

        result = build_verifier(client).resolve(paid.order.order_id)

        assert result.succeeded
        assert not result.transitioned
        assert result.amount_received == ONE_SOL
        assert client.calls == []

    def test_success_is_never_overwritten(
        self, payment, build_verifier, fake_chain_client, parsed_transaction
    ):
        client = fake_chain_client(
            statuses=[CONFIRMED],
            transactions=[parsed_transaction(memo=REFERENCE)],
        )
        verifier = build_verifier(client)
        verifier.verify(payment.order.order_id, "sig-1")

        result = verifier.resolve(payment.order.order_id)

        assert result.succeeded
        assert not result.transitioned
