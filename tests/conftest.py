import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('SOLANA_RPC_URL', 'http://localhost:8899')
os.environ.setdefault('SUBSCRIPTION_PROGRAM_ID', '5MpaXq6rwiWfnpjR5THsa6TsLRMJ8jxgNYw3HH86yKwU')
os.environ.setdefault('MERCHANT_WALLET', 'CRZUdacW3tzgDvPiEPeiXCsNzVtSBCgztuUwPwNz1JYv')
# TestClient peers report host 'testclient'; trust it as the proxy.
os.environ.setdefault('FORWARDED_ALLOW_IPS', 'testclient')
os.environ.pop('MERCHANT_KEYPAIR_SECRET', None)

import base58  # noqa: E402
import pytest  # noqa: E402
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey  # noqa: E402

from app.core.exceptions import TransactionError  # noqa: E402
from app.core.security import MerchantSigner  # noqa: E402
from app.integrations.solana_rpc import AccountInfo, ProgramAccount  # noqa: E402
from app.models.subscription import Subscription  # noqa: E402
from app.program.codec import encode_subscription_account  # noqa: E402
from app.program.pubkey import Pubkey  # noqa: E402

PROGRAM_ID = Pubkey.from_string(os.environ['SUBSCRIPTION_PROGRAM_ID'])
NOW = 1_760_000_000
DAY = 24 * 60 * 60


def random_key() -> Pubkey:
    return Pubkey(os.urandom(32))


def make_subscription(**overrides) -> Subscription:
    values = dict(
        address=random_key(),
        authority=random_key(),
        recipient=random_key(),
        user_token_account=random_key(),
        recipient_token_account=random_key(),
        token_mint=random_key(),
        amount_per_period=200_000,
        interval_seconds=30 * DAY,
        last_charge_timestamp=NOW - 40 * DAY,
        created_at=NOW - 70 * DAY,
        expires_at=None,
        is_active=True,
        total_charged=400_000,
        bump=254,
    )
    values.update(overrides)
    return Subscription(**values)


def as_program_account(record: Subscription) -> ProgramAccount:
    return ProgramAccount(pubkey=record.address, data=encode_subscription_account(record), lamports=2_000_000)


class FakeRPC:
    """In-memory stand-in for SolanaRPCClient."""

    # Offset of the subscription key inside a charge transaction: signature
    # count (1) + signature (64) + header (3) + key count (1) + fee payer (32).
    SUBSCRIPTION_KEY_OFFSET = 101

    def __init__(self, accounts=None, account_infos=None):
        self.accounts = list(accounts or [])
        self.account_infos = dict(account_infos or {})
        self.sent = []
        self.confirmed = []
        self.fail_confirm_for = set()
        self.fail_blockhash = False
        self.blockhash = str(Pubkey(bytes([7]) * 32))

    async def get_program_accounts(self, program_id):
        return list(self.accounts)

    async def get_account_info(self, address):
        data = self.account_infos.get(str(address))
        if data is None:
            return None
        return AccountInfo(data=data, lamports=2_000_000, owner=str(PROGRAM_ID))

    async def get_latest_blockhash(self):
        if self.fail_blockhash:
            raise ConnectionError('blockhash fetch timed out')
        return self.blockhash

    async def send_transaction(self, wire_transaction):
        self.sent.append(wire_transaction)
        return base58.b58encode(wire_transaction[1:65]).decode('ascii')

    async def confirm_transaction(self, signature, timeout=None, poll_interval=None):
        wire = next(w for w in self.sent if base58.b58encode(w[1:65]).decode('ascii') == signature)
        start = self.SUBSCRIPTION_KEY_OFFSET
        subscription = str(Pubkey(wire[start:start + 32]))
        if subscription in self.fail_confirm_for:
            raise TransactionError('custom program error: 0x1772', signature=signature)
        self.confirmed.append(signature)
        return {'confirmationStatus': 'confirmed', 'err': None}

    async def get_health(self):
        return True


@pytest.fixture
def fake_rpc():
    return FakeRPC()


@pytest.fixture
def merchant_signer():
    return MerchantSigner(Ed25519PrivateKey.generate())
