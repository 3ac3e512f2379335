"""Pydantic models for the subset of Solana RPC responses we consume.

Only ``jsonParsed`` transactions are supported.  Unknown keys are ignored
so new RPC fields never break parsing.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _RpcModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class SignatureStatus(_RpcModel):
    slot: Optional[int] = None
    confirmations: Optional[int] = None
    err: Optional[Any] = None
    confirmation_status: Optional[str] = Field(default=None, alias="confirmationStatus")


class ParsedInstruction(_RpcModel):
    program: Optional[str] = None
    program_id: Optional[str] = Field(default=None, alias="programId")
    parsed: Optional[Any] = None
    data: Optional[str] = None


class TransactionMeta(_RpcModel):
    err: Optional[Any] = None
    pre_balances: List[int] = Field(default_factory=list, alias="preBalances")
    post_balances: List[int] = Field(default_factory=list, alias="postBalances")


class ParsedTransaction(_RpcModel):
    slot: Optional[int] = None
    meta: Optional[TransactionMeta] = None
    account_keys: List[str] = Field(default_factory=list)
    instructions: List[ParsedInstruction] = Field(default_factory=list)

    @field_validator("account_keys", mode="before")
    @classmethod
    def flatten_account_keys(cls, value: Any) -> Any:
        # jsonParsed yields {"pubkey": ..., "signer": ...}; legacy encodings
        # yield plain base58 strings.
        if not isinstance(value, list):
            return value
        return [key.get("pubkey") if isinstance(key, dict) else key for key in value]

    @classmethod
    def from_rpc(cls, result: Dict[str, Any]) -> ParsedTransaction:
        message = (result.get("transaction") or {}).get("message") or {}
        return cls(
            slot=result.get("slot"),
            meta=result.get("meta"),
            account_keys=message.get("accountKeys") or [],
            instructions=message.get("instructions") or [],
        )

    def account_index(self, address: str) -> Optional[int]:
        try:
            return self.account_keys.index(address)
        except ValueError:
            return None

    def balance_delta(self, index: int) -> Optional[int]:
        """``post - pre`` lamports for the account at ``index``."""
        if self.meta is None:
            return None
        pre, post = self.meta.pre_balances, self.meta.post_balances
        if index >= len(pre) or index >= len(post):
            return None
        return post[index] - pre[index]
