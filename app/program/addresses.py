"""Deterministic address derivation for subscription records and token accounts."""
from __future__ import annotations

from typing import Tuple

from app.program.pubkey import AddressLike, Pubkey, find_program_address, to_pubkey

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey(bytes(32))

SUBSCRIPTION_SEED = b"subscription"


def derive_subscription_address(
    authority: AddressLike,
    recipient: AddressLike,
    program_id: AddressLike,
) -> Tuple[Pubkey, int]:
    """Return ``(address, bump)`` of the record for an authority/recipient pair.

    Seed order is fixed by the on-ledger program: literal, authority, recipient.
    """
    return find_program_address(
        [SUBSCRIPTION_SEED, bytes(to_pubkey(authority)), bytes(to_pubkey(recipient))],
        program_id,
    )


def derive_associated_token_address(
    mint: AddressLike,
    owner: AddressLike,
    token_program_id: AddressLike = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Return the associated token account holding ``mint`` for ``owner``."""
    address, _ = find_program_address(
        [bytes(to_pubkey(owner)), bytes(to_pubkey(token_program_id)), bytes(to_pubkey(mint))],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
