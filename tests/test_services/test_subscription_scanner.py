import pytest

from app.integrations.solana_rpc import ProgramAccount
from app.program import codec
from app.services.subscription_scanner import SubscriptionScanner
from conftest import FakeRPC, PROGRAM_ID, as_program_account, make_subscription, random_key


def _raw_account(data: bytes) -> ProgramAccount:
    return ProgramAccount(pubkey=random_key(), data=data, lamports=1_000_000)


@pytest.mark.asyncio
async def test_scan_sorts_valid_and_malformed_records():
    good = make_subscription()
    also_good = make_subscription(expires_at=1_800_000_000)
    too_small = _raw_account(codec.account_discriminator("Subscription") + bytes(100))
    wrong_type = _raw_account(codec.account_discriminator("MerchantConfig") + bytes(211))
    garbage = as_program_account(make_subscription(amount_per_period=2**63))

    rpc = FakeRPC(accounts=[as_program_account(good), too_small, wrong_type, garbage, as_program_account(also_good)])
    result = await SubscriptionScanner(rpc, PROGRAM_ID).scan()

    assert result.total == 5
    assert [record.address for record in result.records] == [good.address, also_good.address]
    assert result.records[1].expires_at == 1_800_000_000
    assert [m.reason for m in result.malformed] == ["too_small", "wrong_discriminator", "garbage_values"]
    assert result.malformed[0].address == str(too_small.pubkey)


@pytest.mark.asyncio
async def test_scan_of_empty_program():
    result = await SubscriptionScanner(FakeRPC(), PROGRAM_ID).scan()
    assert result.total == 0
    assert result.records == []
    assert result.malformed == []


@pytest.mark.asyncio
async def test_scan_uses_configured_ceiling():
    record = make_subscription(amount_per_period=50_000_000)
    rpc = FakeRPC(accounts=[as_program_account(record)])

    strict = await SubscriptionScanner(rpc, PROGRAM_ID, max_amount=10_000_000).scan()
    relaxed = await SubscriptionScanner(rpc, PROGRAM_ID).scan()

    assert strict.malformed[0].reason == "garbage_values"
    assert relaxed.records == [record]


def test_classify_keeps_account_address():
    record = make_subscription()
    decoded = SubscriptionScanner(FakeRPC(), PROGRAM_ID).classify(as_program_account(record))
    assert decoded == record


@pytest.mark.asyncio
async def test_undecodable_account_data_is_reported_not_fatal():
    good = make_subscription()
    unreadable = ProgramAccount(pubkey=random_key(), data=b"", decode_error="Unsupported account encoding: base58")
    rpc = FakeRPC(accounts=[unreadable, as_program_account(good)])

    result = await SubscriptionScanner(rpc, PROGRAM_ID).scan()

    assert result.total == 2
    assert result.records == [good]
    assert result.malformed[0].address == str(unreadable.pubkey)
    assert result.malformed[0].reason == "garbage_values"
    assert "base58" in result.malformed[0].detail
