"""Chain connection settings.

Built once from Django settings and passed explicitly to the RPC client and
the verifier; nothing in this package reads configuration at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings


@dataclass(frozen=True)
class ChainSettings:
    rpc_url: str
    commitment: str = "confirmed"
    recipient: str = ""
    max_attempts: int = 6
    retry_delay: float = 2.0
    request_timeout: float = 10.0
    # Price of one SOL in the order currency; enables server-side quotes.
    sol_price: Optional[Decimal] = None
    quote_tolerance_percent: int = 2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative.")
        if self.sol_price is not None and self.sol_price <= 0:
            raise ValueError("sol_price must be positive.")
        if not 0 <= self.quote_tolerance_percent < 100:
            raise ValueError("quote_tolerance_percent must be within 0..99.")

    @classmethod
    def from_django(cls) -> ChainSettings:
        return cls(
            rpc_url=settings.SOLANA_RPC_URL,
            commitment=settings.SOLANA_COMMITMENT,
            recipient=settings.SOLANA_RECIPIENT,
            max_attempts=settings.CHAIN_MAX_ATTEMPTS,
            retry_delay=settings.CHAIN_RETRY_DELAY_SECONDS,
            request_timeout=settings.CHAIN_RPC_TIMEOUT_SECONDS,
            sol_price=settings.SOLANA_PRICE,
            quote_tolerance_percent=settings.SOLANA_QUOTE_TOLERANCE_PERCENT,
        )
