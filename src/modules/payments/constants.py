"""Payment domain constants."""

from django.db import models

from modules.orders.constants import PricingOption


class PaymentMethod(models.TextChoices):
    SOLANA = "solana", "Solana"
    CARD = "card", "Card"
    TOKEN = "token", "Token"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


# A new attempt may replace the current one only from these states.
SUPERSEDABLE_STATES: set[str] = {PaymentStatus.PENDING, PaymentStatus.FAILED}

# Discount table entry used to price each rail.
PRICING_KEY_BY_METHOD: dict[str, str] = {
    PaymentMethod.SOLANA: PricingOption.SOL,
    PaymentMethod.TOKEN: PricingOption.SPL,
    PaymentMethod.CARD: PricingOption.CARD,
}

TOKEN_CURRENCY = "USDC"
SOL_CURRENCY = "SOL"

LAMPORTS_PER_SOL = 1_000_000_000

MEMO_PROGRAM_NAME = "spl-memo"
MEMO_PROGRAM_IDS: frozenset[str] = frozenset(
    {
        "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr",
        "Memo1UhkJRfHyvLMcVucJwxXeuD728EqVDDwQDxFMNo",
    }
)

STRIPE_EVENT_SUCCEEDED = "payment_intent.succeeded"
STRIPE_EVENT_FAILED = "payment_intent.payment_failed"
