"""
Legacy transaction message compilation and wire serialization.

Signing itself is delegated to a signer object exposing ``public_key`` and
``sign(message) -> bytes`` (see ``app.core.security.MerchantSigner``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

import base58

from app.program.instructions import Instruction
from app.program.pubkey import Pubkey, to_pubkey

SIGNATURE_LENGTH = 64


class Signer(Protocol):
    public_key: Pubkey

    def sign(self, message: bytes) -> bytes:
        ...


def encode_length(value: int) -> bytes:
    """Compact-u16 length prefix: 7 bits per byte, high bit means more."""
    if value < 0 or value > 0xFFFF:
        raise ValueError(f"Length out of compact-u16 range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


@dataclass
class _KeyFlags:
    is_signer: bool = False
    is_writable: bool = False


@dataclass
class Message:
    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int
    account_keys: List[Pubkey]
    recent_blockhash: bytes
    instructions: List[Instruction] = field(default_factory=list)

    def serialize(self) -> bytes:
        index: Dict[Pubkey, int] = {key: i for i, key in enumerate(self.account_keys)}
        out = bytearray(
            [self.num_required_signatures, self.num_readonly_signed, self.num_readonly_unsigned]
        )
        out += encode_length(len(self.account_keys))
        for key in self.account_keys:
            out += bytes(key)
        out += self.recent_blockhash
        out += encode_length(len(self.instructions))
        for ix in self.instructions:
            out.append(index[ix.program_id])
            out += encode_length(len(ix.accounts))
            out += bytes(index[meta.pubkey] for meta in ix.accounts)
            out += encode_length(len(ix.data))
            out += ix.data
        return bytes(out)

    @property
    def signer_keys(self) -> List[Pubkey]:
        return self.account_keys[: self.num_required_signatures]


def compile_message(
    instructions: Sequence[Instruction],
    fee_payer: Pubkey,
    recent_blockhash: str,
) -> Message:
    """Merge account metas and order them signer/writable first, fee payer leading."""
    blockhash = base58.b58decode(recent_blockhash)
    if len(blockhash) != 32:
        raise ValueError(f"Recent blockhash must decode to 32 bytes: {recent_blockhash!r}")

    flags: Dict[Pubkey, _KeyFlags] = {fee_payer: _KeyFlags(is_signer=True, is_writable=True)}
    for ix in instructions:
        for meta in ix.accounts:
            entry = flags.setdefault(meta.pubkey, _KeyFlags())
            entry.is_signer = entry.is_signer or meta.is_signer
            entry.is_writable = entry.is_writable or meta.is_writable
        flags.setdefault(ix.program_id, _KeyFlags())

    others = [key for key in flags if key != fee_payer]
    groups = (
        [k for k in others if flags[k].is_signer and flags[k].is_writable],
        [k for k in others if flags[k].is_signer and not flags[k].is_writable],
        [k for k in others if not flags[k].is_signer and flags[k].is_writable],
        [k for k in others if not flags[k].is_signer and not flags[k].is_writable],
    )
    account_keys = [fee_payer, *groups[0], *groups[1], *groups[2], *groups[3]]
    return Message(
        num_required_signatures=1 + len(groups[0]) + len(groups[1]),
        num_readonly_signed=len(groups[1]),
        num_readonly_unsigned=len(groups[3]),
        account_keys=account_keys,
        recent_blockhash=blockhash,
        instructions=list(instructions),
    )


@dataclass
class Transaction:
    message: Message
    signatures: List[bytes] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        instructions: Sequence[Instruction],
        fee_payer,
        recent_blockhash: str,
    ) -> "Transaction":
        return cls(message=compile_message(instructions, to_pubkey(fee_payer), recent_blockhash))

    def sign(self, signers: Sequence[Signer]) -> "Transaction":
        payload = self.message.serialize()
        by_key = {signer.public_key: signer for signer in signers}
        signatures: List[bytes] = []
        for key in self.message.signer_keys:
            signer = by_key.get(key)
            if signer is None:
                raise ValueError(f"Missing signer for {key}")
            signature = signer.sign(payload)
            if len(signature) != SIGNATURE_LENGTH:
                raise ValueError(f"Signer returned {len(signature)}-byte signature for {key}")
            signatures.append(signature)
        self.signatures = signatures
        return self

    @property
    def signature(self) -> str:
        """Transaction id: base58 of the fee payer's signature."""
        if not self.signatures:
            raise ValueError("Transaction is not signed")
        return base58.b58encode(self.signatures[0]).decode("ascii")

    def serialize(self) -> bytes:
        if len(self.signatures) != self.message.num_required_signatures:
            raise ValueError("Transaction is not fully signed")
        out = bytearray(encode_length(len(self.signatures)))
        for signature in self.signatures:
            out += signature
        out += self.message.serialize()
        return bytes(out)
