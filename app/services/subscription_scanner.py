"""
Registry scanner: fetch every account owned by the billing program and sort
them into decodable subscriptions and malformed buffers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from app.core.exceptions import ImplausibleValuesError, ParseError
from app.integrations.solana_rpc import ProgramAccount, SolanaRPCClient
from app.models.subscription import Subscription
from app.program import codec
from app.program.pubkey import AddressLike, to_pubkey
from app.schemas.subscription import MalformedRecord

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    total: int = 0
    records: List[Subscription] = field(default_factory=list)
    malformed: List[MalformedRecord] = field(default_factory=list)


class SubscriptionScanner:
    """Reads all program accounts and classifies each one independently."""

    def __init__(
        self,
        rpc: SolanaRPCClient,
        program_id: AddressLike,
        max_amount: int = codec.DEFAULT_MAX_PLAUSIBLE_AMOUNT,
        max_interval_seconds: int = codec.ONE_YEAR_SECONDS,
    ):
        self.rpc = rpc
        self.program_id = to_pubkey(program_id)
        self.max_amount = max_amount
        self.max_interval_seconds = max_interval_seconds

    def classify(self, account: ProgramAccount) -> Subscription:
        """Size, discriminator, then plausibility; first failure raises ``ParseError``."""
        if account.decode_error:
            raise ImplausibleValuesError(account.decode_error, str(account.pubkey))
        record = codec.decode_subscription(account.data, account.pubkey)
        return codec.check_plausibility(record, self.max_amount, self.max_interval_seconds)

    async def scan(self) -> ScanResult:
        accounts = await self.rpc.get_program_accounts(self.program_id)
        logger.info("Found %s account(s) owned by %s", len(accounts), self.program_id)

        result = ScanResult(total=len(accounts))
        for account in accounts:
            try:
                result.records.append(self.classify(account))
            except ParseError as exc:
                logger.warning(
                    "Skipping %s: %s (%s bytes): %s",
                    account.pubkey.short(),
                    exc.reason,
                    len(account.data),
                    exc,
                )
                result.malformed.append(
                    MalformedRecord(address=str(account.pubkey), reason=exc.reason, detail=str(exc))
                )
        return result
