from __future__ import annotations

import hashlib
import struct

import pytest

from app.core.exceptions import (
    AccountTooSmallError,
    DiscriminatorMismatchError,
    ImplausibleValuesError,
)
from app.program import codec
from app.program.layout import SUBSCRIPTION_FIELDS, max_size, min_size
from conftest import DAY, NOW, make_subscription


def test_discriminators_are_sha256_prefixes():
    assert codec.instruction_discriminator("charge_subscription") == hashlib.sha256(
        b"global:charge_subscription"
    ).digest()[:8]
    assert codec.account_discriminator("Subscription") == hashlib.sha256(
        b"account:Subscription"
    ).digest()[:8]


def test_argless_instructions_are_discriminator_only():
    encoded = [codec.encode_charge_args(), codec.encode_cancel_args(), codec.encode_cleanup_args()]
    assert all(len(data) == 8 for data in encoded)
    assert len(set(encoded)) == 3
    assert encoded[0] == hashlib.sha256(b"global:charge_subscription").digest()[:8]
    assert encoded[2] == hashlib.sha256(b"global:cleanup_cancelled_subscription").digest()[:8]


def test_initialize_args_without_expiry():
    data = codec.encode_initialize_args(200_000, 30 * DAY)
    assert len(data) == 25
    assert data[:8] == codec.instruction_discriminator("initialize_subscription")
    assert struct.unpack("<Q", data[8:16])[0] == 200_000
    assert struct.unpack("<q", data[16:24])[0] == 30 * DAY
    assert data[24] == 0


def test_initialize_args_with_expiry():
    data = codec.encode_initialize_args(100_000, 60, expires_at=NOW + DAY)
    assert len(data) == 33
    assert data[24] == 1
    assert struct.unpack("<q", data[25:33])[0] == NOW + DAY


def test_initialize_args_reject_out_of_range_amount():
    with pytest.raises(ValueError):
        codec.encode_initialize_args(-1, 60)


def test_update_args_options():
    empty = codec.encode_update_args()
    assert empty == codec.instruction_discriminator("update_subscription") + b"\x00\x00\x00"
    full = codec.encode_update_args(new_amount=5, new_interval=-7, new_expires_at=9)
    assert len(full) == 8 + 3 * 9
    assert struct.unpack("<Q", full[9:17])[0] == 5
    assert struct.unpack("<q", full[18:26])[0] == -7
    assert struct.unpack("<q", full[27:35])[0] == 9


def test_layout_sizes():
    assert 8 + min_size(SUBSCRIPTION_FIELDS) == 211
    assert 8 + max_size(SUBSCRIPTION_FIELDS) == 219


@pytest.mark.parametrize("expires_at", [None, NOW + 90 * DAY])
def test_initialize_args_round_trip_through_account_storage(expires_at):
    args = codec.encode_initialize_args(300_000, 30 * DAY, expires_at)
    keys = b"".join(bytes([i]) * 32 for i in range(1, 6))
    storage = (
        codec.account_discriminator("Subscription")
        + keys
        + args[8:16]  # amount_per_period
        + args[16:24]  # interval_seconds
        + struct.pack("<q", NOW)  # last_charge_timestamp
        + struct.pack("<q", NOW)  # created_at
        + args[24:]  # Option<i64> expires_at
        + b"\x01"  # is_active
        + struct.pack("<Q", 300_000)
        + b"\xfe"
    )
    record = codec.decode_subscription(storage)
    assert record.amount_per_period == 300_000
    assert record.interval_seconds == 30 * DAY
    assert record.expires_at == expires_at
    assert record.is_active is True
    assert record.bump == 0xFE
    assert bytes(record.token_mint) == bytes([5]) * 32


@pytest.mark.parametrize("expires_at", [None, NOW + DAY])
def test_account_encode_decode_agree(expires_at):
    record = make_subscription(expires_at=expires_at, is_active=False)
    data = codec.encode_subscription_account(record)
    assert len(data) == (219 if expires_at else 211)
    assert codec.decode_subscription(data, record.address) == record


def test_account_offsets_match_published_layout():
    record = make_subscription(expires_at=NOW + DAY)
    data = codec.encode_subscription_account(record)
    assert data[8:40] == bytes(record.authority)
    assert data[136:168] == bytes(record.token_mint)
    assert struct.unpack("<Q", data[168:176])[0] == record.amount_per_period
    assert struct.unpack("<q", data[184:192])[0] == record.last_charge_timestamp
    assert data[200] == 1
    assert struct.unpack("<q", data[201:209])[0] == record.expires_at
    assert data[209] == 1
    assert struct.unpack("<Q", data[210:218])[0] == record.total_charged
    assert data[218] == record.bump


def test_short_buffer_rejected_before_field_reads(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("field reader must not run")

    monkeypatch.setattr(codec, "decode_fields", fail)
    data = codec.account_discriminator("Subscription") + bytes(192)
    assert len(data) == 200
    with pytest.raises(AccountTooSmallError) as exc_info:
        codec.decode_subscription(data)
    assert exc_info.value.reason == "too_small"


def test_wrong_discriminator_rejected():
    data = codec.encode_subscription_account(make_subscription())
    tampered = b"\x00" * 8 + data[8:]
    with pytest.raises(DiscriminatorMismatchError) as exc_info:
        codec.decode_subscription(tampered, make_subscription().address)
    assert exc_info.value.reason == "wrong_discriminator"
    assert exc_info.value.address is not None


def test_other_account_type_rejected():
    data = codec.account_discriminator("MerchantConfig") + bytes(211)
    with pytest.raises(DiscriminatorMismatchError):
        codec.decode_subscription(data)


def test_expiry_tag_present_but_buffer_truncated():
    record = make_subscription(expires_at=NOW + DAY)
    data = codec.encode_subscription_account(record)[:212]
    with pytest.raises(AccountTooSmallError):
        codec.decode_subscription(data)


def test_invalid_option_tag_is_garbage():
    data = bytearray(codec.encode_subscription_account(make_subscription()))
    data[200] = 2
    with pytest.raises(ImplausibleValuesError):
        codec.decode_subscription(bytes(data))


def test_plausibility_accepts_normal_record():
    record = make_subscription()
    assert codec.check_plausibility(record) is record


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount_per_period": codec.DEFAULT_MAX_PLAUSIBLE_AMOUNT + 1},
        {"total_charged": codec.DEFAULT_MAX_PLAUSIBLE_AMOUNT + 1},
        {"interval_seconds": -1},
        {"interval_seconds": codec.ONE_YEAR_SECONDS + 1},
    ],
)
def test_plausibility_rejects_garbage(overrides):
    with pytest.raises(ImplausibleValuesError) as exc_info:
        codec.check_plausibility(make_subscription(**overrides))
    assert exc_info.value.reason == "garbage_values"


def test_plausibility_ceiling_is_configurable():
    record = make_subscription(amount_per_period=5_000)
    with pytest.raises(ImplausibleValuesError):
        codec.check_plausibility(record, max_amount=1_000)
