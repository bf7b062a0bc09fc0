"""Merchant signing credential: loading, validation and Ed25519 signing."""
from __future__ import annotations

import base64
import binascii
import json
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from pydantic import SecretStr

from app.config import Settings, settings
from app.core.exceptions import ConfigurationError
from app.program.pubkey import Pubkey

SEED_LENGTH = 32
KEYPAIR_LENGTH = 64


class MerchantSigner:
    """Holds the merchant's Ed25519 key for the lifetime of a batch run."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        raw = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.public_key = Pubkey(raw)

    @classmethod
    def from_keypair_bytes(cls, secret: bytes) -> "MerchantSigner":
        """Accept a 64-byte keypair (seed + public key) or a bare 32-byte seed."""
        if len(secret) not in (SEED_LENGTH, KEYPAIR_LENGTH):
            raise ConfigurationError(
                f"Merchant keypair must be {SEED_LENGTH} or {KEYPAIR_LENGTH} bytes, got {len(secret)}"
            )
        signer = cls(Ed25519PrivateKey.from_private_bytes(secret[:SEED_LENGTH]))
        if len(secret) == KEYPAIR_LENGTH and bytes(signer.public_key) != secret[SEED_LENGTH:]:
            raise ConfigurationError("Merchant keypair public half does not match its seed")
        return signer

    @classmethod
    def from_base64_secret(cls, secret: SecretStr | str) -> "MerchantSigner":
        value = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
        try:
            decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
            numbers = json.loads(decoded)
            raw = bytes(numbers)
        except (binascii.Error, UnicodeDecodeError, ValueError, TypeError) as exc:
            raise ConfigurationError("Invalid merchant keypair configuration") from exc
        return cls.from_keypair_bytes(raw)

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def __repr__(self) -> str:
        return f"MerchantSigner(public_key={self.public_key})"


def load_merchant_signer(config: Optional[Settings] = None) -> MerchantSigner:
    """Build the signer from settings; absence is fatal for any triggered run."""
    config = config or settings
    if config.merchant_keypair_secret is None or not config.merchant_keypair_secret.get_secret_value():
        raise ConfigurationError("MERCHANT_KEYPAIR_SECRET is not configured")
    return MerchantSigner.from_base64_secret(config.merchant_keypair_secret)


def encode_keypair_secret(private_key: Ed25519PrivateKey) -> str:
    """Inverse of ``MerchantSigner.from_base64_secret``; used for provisioning keys."""
    seed = private_key.private_bytes_raw()
    public = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return base64.b64encode(json.dumps(list(seed + public)).encode("utf-8")).decode("ascii")
