"""
Instruction and account codec for the subscription billing program.

Discriminators are the first 8 bytes of ``sha256("global:<instruction>")`` for
instruction calls and ``sha256("account:<AccountType>")`` for stored accounts.
"""
from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import Optional

from app.core.exceptions import (
    AccountTooSmallError,
    DiscriminatorMismatchError,
    ImplausibleValuesError,
    ParseError,
)
from app.models.subscription import Subscription
from app.program.layout import (
    INITIALIZE_ARGS,
    SUBSCRIPTION_FIELDS,
    UPDATE_ARGS,
    decode_fields,
    encode_fields,
)
from app.program.pubkey import AddressLike, to_pubkey

DISCRIMINATOR_LENGTH = 8

INITIALIZE_SUBSCRIPTION = "initialize_subscription"
CHARGE_SUBSCRIPTION = "charge_subscription"
CANCEL_SUBSCRIPTION = "cancel_subscription"
CLEANUP_CANCELLED_SUBSCRIPTION = "cleanup_cancelled_subscription"
UPDATE_SUBSCRIPTION = "update_subscription"

SUBSCRIPTION_ACCOUNT = "Subscription"

# Size gate applied before any field read. A record without expiry actually
# ends at 211 bytes; the field reader rejects anything shorter than the layout.
MIN_ACCOUNT_SIZE = 210

ONE_YEAR_SECONDS = 365 * 24 * 60 * 60
# 1,000,000 tokens at 6 decimals.
DEFAULT_MAX_PLAUSIBLE_AMOUNT = 1_000_000 * 1_000_000


def _sighash(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LENGTH]


@lru_cache(maxsize=None)
def instruction_discriminator(name: str) -> bytes:
    return _sighash("global", name)


@lru_cache(maxsize=None)
def account_discriminator(name: str) -> bytes:
    return _sighash("account", name)


def encode_initialize_args(
    amount_per_period: int,
    interval_seconds: int,
    expires_at: Optional[int] = None,
) -> bytes:
    """Discriminator, u64 amount, i64 interval, then ``Option<i64>`` expiry."""
    return instruction_discriminator(INITIALIZE_SUBSCRIPTION) + encode_fields(
        INITIALIZE_ARGS,
        {
            "amount_per_period": amount_per_period,
            "interval_seconds": interval_seconds,
            "expires_at": expires_at,
        },
    )


def encode_update_args(
    new_amount: Optional[int] = None,
    new_interval: Optional[int] = None,
    new_expires_at: Optional[int] = None,
) -> bytes:
    return instruction_discriminator(UPDATE_SUBSCRIPTION) + encode_fields(
        UPDATE_ARGS,
        {
            "new_amount": new_amount,
            "new_interval": new_interval,
            "new_expires_at": new_expires_at,
        },
    )


def encode_charge_args() -> bytes:
    return instruction_discriminator(CHARGE_SUBSCRIPTION)


def encode_cancel_args() -> bytes:
    return instruction_discriminator(CANCEL_SUBSCRIPTION)


def encode_cleanup_args() -> bytes:
    return instruction_discriminator(CLEANUP_CANCELLED_SUBSCRIPTION)


def decode_subscription(data: bytes, address: AddressLike | None = None) -> Subscription:
    """Decode a raw account buffer into a ``Subscription``.

    Raises ``AccountTooSmallError`` before touching any field when the buffer is
    under ``MIN_ACCOUNT_SIZE``, ``DiscriminatorMismatchError`` when it belongs to
    another account type, and ``ImplausibleValuesError`` for invalid tag bytes.
    """
    label = str(address) if address is not None else None
    if len(data) < MIN_ACCOUNT_SIZE:
        raise AccountTooSmallError(
            f"Account is {len(data)} bytes, need at least {MIN_ACCOUNT_SIZE}", address=label
        )
    if bytes(data[:DISCRIMINATOR_LENGTH]) != account_discriminator(SUBSCRIPTION_ACCOUNT):
        raise DiscriminatorMismatchError(
            "Leading bytes do not match the Subscription account discriminator", address=label
        )
    try:
        values, _ = decode_fields(SUBSCRIPTION_FIELDS, bytes(data), DISCRIMINATOR_LENGTH)
    except ParseError as exc:
        exc.address = label
        raise
    return Subscription(
        address=to_pubkey(address) if address is not None else None,
        **values,
    )


def encode_subscription_account(subscription: Subscription) -> bytes:
    """Serialize a record exactly as the program stores it, discriminator first."""
    values = {desc.name: getattr(subscription, desc.name) for desc in SUBSCRIPTION_FIELDS}
    return account_discriminator(SUBSCRIPTION_ACCOUNT) + encode_fields(SUBSCRIPTION_FIELDS, values)


def check_plausibility(
    subscription: Subscription,
    max_amount: int = DEFAULT_MAX_PLAUSIBLE_AMOUNT,
    max_interval_seconds: int = ONE_YEAR_SECONDS,
) -> Subscription:
    """Reject decoded values no real subscription could hold."""
    label = str(subscription.address) if subscription.address else None
    if subscription.amount_per_period > max_amount or subscription.total_charged > max_amount:
        raise ImplausibleValuesError(
            f"Amount too high (amount={subscription.amount_per_period}, "
            f"total={subscription.total_charged}, ceiling={max_amount})",
            address=label,
        )
    if subscription.interval_seconds < 0 or subscription.interval_seconds > max_interval_seconds:
        raise ImplausibleValuesError(
            f"Invalid interval {subscription.interval_seconds}s", address=label
        )
    return subscription

