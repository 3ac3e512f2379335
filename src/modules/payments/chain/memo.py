"""Memo instruction decoding.

A decoded memo is one of three explicit outcomes so the matching logic in
the verifier stays exhaustive:

- ``MemoFound(text)``: a memo instruction with readable UTF-8 text.
- ``MemoNotFound()``: no memo instruction, or one without any payload.
- ``MemoDecodeError(detail)``: raw ``data`` that is not base58 or not UTF-8.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Union

import base58

from modules.payments.chain.dtos import ParsedInstruction, ParsedTransaction
from modules.payments.constants import MEMO_PROGRAM_IDS, MEMO_PROGRAM_NAME


@dataclass(frozen=True)
class MemoFound:
    text: str


@dataclass(frozen=True)
class MemoNotFound:
    pass


@dataclass(frozen=True)
class MemoDecodeError:
    detail: str


Memo = Union[MemoFound, MemoNotFound, MemoDecodeError]


def is_memo_instruction(instruction: ParsedInstruction) -> bool:
    return (
        instruction.program == MEMO_PROGRAM_NAME
        or instruction.program_id in MEMO_PROGRAM_IDS
    )


def decode_memo(instruction: ParsedInstruction) -> Memo:
    """Decode a single memo instruction (parsed text, ``{"memo"}`` or base58)."""
    parsed = instruction.parsed
    if isinstance(parsed, str):
        return MemoFound(parsed)
    if isinstance(parsed, dict) and isinstance(parsed.get("memo"), str):
        return MemoFound(parsed["memo"])
    if instruction.data:
        try:
            raw = base58.b58decode(instruction.data)
        except ValueError as exc:
            return MemoDecodeError(f"invalid base58 memo data: {exc}")
        try:
            return MemoFound(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            return MemoDecodeError(f"memo is not valid UTF-8: {exc}")
    return MemoNotFound()


def extract_memos(transaction: ParsedTransaction) -> List[Memo]:
    return [
        decode_memo(instruction)
        for instruction in transaction.instructions
        if is_memo_instruction(instruction)
    ]


def memo_mismatch_reason(memos: Iterable[Memo], reference: str) -> str | None:
    """Return ``None`` if any memo equals ``reference``, else why it did not."""
    memos = list(memos)
    if any(isinstance(memo, MemoFound) and memo.text == reference for memo in memos):
        return None

    errors = [memo.detail for memo in memos if isinstance(memo, MemoDecodeError)]
    found = [memo.text for memo in memos if isinstance(memo, MemoFound)]
    if found:
        return f"memo mismatch: expected reference {reference!r}, found {found!r}"
    if errors:
        return f"memo mismatch: {'; '.join(errors)}"
    return "memo mismatch: no memo instruction in transaction"
