"""Payment domain exceptions.

Raised by the payment services and verifiers.  The API layer (Views)
catches these and translates them into HTTP responses.

Terminal verification outcomes (memo mismatch, underpayment, ...) are not
exceptions: they are persisted on the Payment and returned as a
``VerificationResult``.
"""

from __future__ import annotations


class PaymentNotFound(Exception):
    """No payment exists for the requested order."""


class PaymentForbidden(Exception):
    """The actor does not own the order being paid."""


class InvalidPaymentState(Exception):
    """The payment (or its order) is not in a state that allows the operation."""


class PaymentAlreadyCompleted(InvalidPaymentState):
    """The payment already succeeded; success is never reverted."""


class PaymentMethodMismatch(InvalidPaymentState):
    """The operation does not apply to the payment's method."""


class InvalidPaymentAmount(ValueError):
    """A missing, zero or negative amount was supplied."""


class SignatureAlreadyUsed(Exception):
    """The transaction signature is already recorded on another payment."""


class ChainRpcError(Exception):
    """Transient failure talking to the chain RPC node (retryable)."""


class CardGatewayError(Exception):
    """The card processor rejected or failed a request (retryable)."""


class InvalidWebhookSignature(Exception):
    """Webhook authenticity check failed; the request is rejected."""


class MalformedWebhookPayload(Exception):
    """Webhook passed authentication but its body could not be parsed."""
