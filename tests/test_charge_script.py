from contextlib import asynccontextmanager

import pytest

from app.services.charge_processor import ChargeBatchProcessor
from conftest import NOW, PROGRAM_ID, FakeRPC, as_program_account, make_subscription
from scripts import charge_subscriptions


@pytest.mark.asyncio
async def test_run_once_prints_summary(monkeypatch, capsys, merchant_signer):
    rpc = FakeRPC(accounts=[as_program_account(make_subscription()), as_program_account(make_subscription(is_active=False))])

    @asynccontextmanager
    async def session():
        yield ChargeBatchProcessor(rpc, merchant_signer, PROGRAM_ID, clock=lambda: NOW)

    monkeypatch.setattr(charge_subscriptions, "charge_processor_session", session)

    assert await charge_subscriptions.run_once() == 0
    out = capsys.readouterr().out
    assert "Total accounts: 2" in out
    assert "Charged:        1" in out
    assert "inactive" in out


@pytest.mark.asyncio
async def test_run_once_reports_configuration_error(capsys):
    # Test env has no merchant key configured.
    assert await charge_subscriptions.run_once() == 1
    assert "MERCHANT_KEYPAIR_SECRET" in capsys.readouterr().out
