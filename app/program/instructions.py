"""
Instruction builders for the subscription billing program.

Account ordering and signer/writable flags must match what the program's
account contexts declare.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.program import codec
from app.program.addresses import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    derive_associated_token_address,
    derive_subscription_address,
)
from app.program.pubkey import AddressLike, Pubkey, to_pubkey


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pubkey": str(self.pubkey),
            "is_signer": self.is_signer,
            "is_writable": self.is_writable,
        }


@dataclass(frozen=True)
class Instruction:
    program_id: Pubkey
    accounts: List[AccountMeta] = field(default_factory=list)
    data: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program_id": str(self.program_id),
            "accounts": [meta.to_dict() for meta in self.accounts],
            "data": base64.b64encode(self.data).decode("ascii"),
        }


def build_charge_instruction(
    subscription: AddressLike,
    user_token_account: AddressLike,
    recipient_token_account: AddressLike,
    program_id: AddressLike,
) -> Instruction:
    return Instruction(
        program_id=to_pubkey(program_id),
        accounts=[
            AccountMeta(to_pubkey(subscription), is_writable=True),
            AccountMeta(to_pubkey(user_token_account), is_writable=True),
            AccountMeta(to_pubkey(recipient_token_account), is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID),
        ],
        data=codec.encode_charge_args(),
    )


def build_initialize_instruction(
    authority: AddressLike,
    recipient: AddressLike,
    token_mint: AddressLike,
    program_id: AddressLike,
    amount_per_period: int,
    interval_seconds: int,
    expires_at: Optional[int] = None,
    payer: Optional[AddressLike] = None,
) -> Instruction:
    """Create the record; the authority also pays rent unless ``payer`` is given."""
    authority_key = to_pubkey(authority)
    recipient_key = to_pubkey(recipient)
    mint = to_pubkey(token_mint)
    subscription, _ = derive_subscription_address(authority_key, recipient_key, program_id)
    return Instruction(
        program_id=to_pubkey(program_id),
        accounts=[
            AccountMeta(subscription, is_writable=True),
            AccountMeta(authority_key, is_signer=True),
            AccountMeta(recipient_key),
            AccountMeta(derive_associated_token_address(mint, authority_key), is_writable=True),
            # Writable because initialize takes the prepaid first period.
            AccountMeta(derive_associated_token_address(mint, recipient_key), is_writable=True),
            AccountMeta(mint),
            AccountMeta(TOKEN_PROGRAM_ID),
            AccountMeta(to_pubkey(payer) if payer else authority_key, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID),
        ],
        data=codec.encode_initialize_args(amount_per_period, interval_seconds, expires_at),
    )


def build_cancel_instruction(
    authority: AddressLike,
    recipient: AddressLike,
    token_mint: AddressLike,
    program_id: AddressLike,
) -> Instruction:
    authority_key = to_pubkey(authority)
    subscription, _ = derive_subscription_address(authority_key, recipient, program_id)
    return Instruction(
        program_id=to_pubkey(program_id),
        accounts=[
            AccountMeta(subscription, is_writable=True),
            # Writable so the storage deposit can be refunded.
            AccountMeta(authority_key, is_signer=True, is_writable=True),
            AccountMeta(derive_associated_token_address(token_mint, authority_key), is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID),
        ],
        data=codec.encode_cancel_args(),
    )


def build_cleanup_instruction(
    authority: AddressLike,
    recipient: AddressLike,
    program_id: AddressLike,
) -> Instruction:
    authority_key = to_pubkey(authority)
    subscription, _ = derive_subscription_address(authority_key, recipient, program_id)
    return Instruction(
        program_id=to_pubkey(program_id),
        accounts=[
            AccountMeta(subscription, is_writable=True),
            AccountMeta(authority_key, is_signer=True, is_writable=True),
        ],
        data=codec.encode_cleanup_args(),
    )


def build_update_instruction(
    authority: AddressLike,
    recipient: AddressLike,
    program_id: AddressLike,
    new_amount: Optional[int] = None,
    new_interval: Optional[int] = None,
    new_expires_at: Optional[int] = None,
) -> Instruction:
    authority_key = to_pubkey(authority)
    subscription, _ = derive_subscription_address(authority_key, recipient, program_id)
    return Instruction(
        program_id=to_pubkey(program_id),
        accounts=[
            AccountMeta(subscription, is_writable=True),
            AccountMeta(authority_key, is_signer=True),
        ],
        data=codec.encode_update_args(new_amount, new_interval, new_expires_at),
    )


def build_create_associated_token_account_instruction(
    payer: AddressLike,
    owner: AddressLike,
    mint: AddressLike,
) -> Instruction:
    owner_key = to_pubkey(owner)
    mint_key = to_pubkey(mint)
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=[
            AccountMeta(to_pubkey(payer), is_signer=True, is_writable=True),
            AccountMeta(derive_associated_token_address(mint_key, owner_key), is_writable=True),
            AccountMeta(owner_key),
            AccountMeta(mint_key),
            AccountMeta(SYSTEM_PROGRAM_ID),
            AccountMeta(TOKEN_PROGRAM_ID),
        ],
        data=b"",
    )
