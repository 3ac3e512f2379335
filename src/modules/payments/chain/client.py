"""Chain RPC client interface and its Solana JSON-RPC implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional
from uuid import uuid4

import requests
import structlog

from modules.payments.chain.dtos import ParsedTransaction, SignatureStatus
from modules.payments.chain.settings import ChainSettings
from modules.payments.exceptions import ChainRpcError

logger = structlog.get_logger(__name__)


class IChainClient(ABC):
    """Read-only view of the chain needed to verify a payment."""

    @abstractmethod
    def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Return the signature's inclusion status, or ``None`` if unknown yet.

        Raises ``ChainRpcError`` on transport or node errors.
        """

    @abstractmethod
    def get_parsed_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        """Return the parsed transaction, or ``None`` if not available yet.

        Raises ``ChainRpcError`` on transport or node errors.
        """


class SolanaRpcClient(IChainClient):
    """Minimal Solana JSON-RPC client over ``requests``."""

    def __init__(
        self,
        chain_settings: ChainSettings,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = chain_settings
        self._session = session or requests.Session()

    def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        result = self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or []
        if not values or values[0] is None:
            return None
        return SignatureStatus.model_validate(values[0])

    def get_parsed_transaction(self, signature: str) -> Optional[ParsedTransaction]:
        result = self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self._settings.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if not result:
            return None
        return ParsedTransaction.from_rpc(result)

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid4()),
            "method": method,
            "params": params,
        }
        try:
            response = self._session.post(
                self._settings.rpc_url,
                json=payload,
                timeout=self._settings.request_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("payment.chain.rpc_failed", method=method, error=str(exc))
            raise ChainRpcError(f"{method} failed: {exc}") from exc

        error = body.get("error")
        if error:
            logger.warning("payment.chain.rpc_error", method=method, error=error)
            raise ChainRpcError(f"{method} returned error: {error}")
        return body.get("result")
