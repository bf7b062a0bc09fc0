"""
Ledger address primitives.

Addresses are 32 raw bytes shown as base58 text. Program-derived addresses are
found by hashing seeds with a bump byte until the digest is *not* a valid
Ed25519 point, so that no private key can ever sign for them.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import base58

from app.core.exceptions import InvalidAddressError

PUBKEY_LENGTH = 32
MAX_SEEDS = 16
MAX_SEED_LENGTH = 32
PDA_MARKER = b"ProgramDerivedAddress"

# Curve25519 field prime and the Edwards d constant.
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


@dataclass(frozen=True)
class Pubkey:
    """Immutable 32-byte ledger address."""

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != PUBKEY_LENGTH:
            raise InvalidAddressError(
                f"Address must be {PUBKEY_LENGTH} bytes, got {len(self.raw) if self.raw else 0}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_string(cls, value: str) -> "Pubkey":
        text = (value or "").strip()
        if not text:
            raise InvalidAddressError("Address is empty")
        try:
            decoded = base58.b58decode(text)
        except ValueError as exc:
            raise InvalidAddressError(f"Invalid base58 address: {value!r}") from exc
        if len(decoded) != PUBKEY_LENGTH:
            raise InvalidAddressError(f"Invalid address length for {value!r}: {len(decoded)} bytes")
        return cls(decoded)

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def short(self) -> str:
        return f"{str(self)[:8]}..."

    def is_on_curve(self) -> bool:
        return is_on_curve(self.raw)


AddressLike = Union[Pubkey, str, bytes]


def to_pubkey(value: AddressLike) -> Pubkey:
    """Coerce text, raw bytes, or a Pubkey into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        return Pubkey.from_string(value)
    if isinstance(value, (bytes, bytearray)):
        return Pubkey(bytes(value))
    raise InvalidAddressError(f"Unsupported address type: {type(value).__name__}")


def is_on_curve(raw: bytes) -> bool:
    """Return True when ``raw`` decompresses to a point on the Ed25519 curve.

    Mirrors the permissive decompression used by the ledger runtime: the sign
    bit is ignored and a non-canonical y is reduced mod p, so the only question
    is whether x^2 = (y^2 - 1) / (d*y^2 + 1) has a square root.
    """
    y = int.from_bytes(raw, "little") & ((1 << 255) - 1)
    y %= _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    if v == 0:
        return u == 0
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise InvalidAddressError(f"At most {MAX_SEEDS} seeds are allowed")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidAddressError(f"Seed exceeds {MAX_SEED_LENGTH} bytes")


def create_program_address(seeds: Sequence[bytes], program_id: AddressLike) -> Pubkey:
    """Hash seeds into an address, rejecting digests that land on the curve."""
    _check_seeds(seeds)
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(to_pubkey(program_id)))
    hasher.update(PDA_MARKER)
    digest = hasher.digest()
    if is_on_curve(digest):
        raise InvalidAddressError("Derived address lies on the Ed25519 curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[bytes], program_id: AddressLike) -> Tuple[Pubkey, int]:
    """Return the first off-curve address walking bump seeds down from 255."""
    _check_seeds([*seeds, b"\x00"])
    program = to_pubkey(program_id)
    for bump in range(255, -1, -1):
        try:
            address = create_program_address([*seeds, bytes([bump])], program)
        except InvalidAddressError:
            continue
        return address, bump
    raise InvalidAddressError("Unable to find a viable program address bump seed")
