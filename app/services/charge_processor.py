"""
Recurring-charge batch processor.

One run scans every subscription, decides dueness from the freshly read
``last_charge_timestamp`` and submits a charge transaction for each due record.
A failure on one record is recorded and the run moves on; the on-chain program
remains the authoritative guard against double charges.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from app.core.security import MerchantSigner
from app.integrations.solana_rpc import SolanaRPCClient
from app.models.subscription import Subscription
from app.program.instructions import build_charge_instruction
from app.program.pubkey import AddressLike, to_pubkey
from app.program.transaction import Transaction
from app.schemas.subscription import ChargeBatchResult, ChargeFailure, SkippedRecord
from app.services.subscription_scanner import SubscriptionScanner

logger = logging.getLogger(__name__)


class _ResultCollector:
    """Single owner of the result buckets while workers run."""

    def __init__(self, total: int):
        self.result = ChargeBatchResult(total=total)

    def charged(self, signature: str) -> None:
        self.result.charged.append(signature)

    def skipped(self, record: SkippedRecord) -> None:
        self.result.skipped.append(record)

    def failed(self, failure: ChargeFailure) -> None:
        self.result.errors.append(failure)


class ChargeBatchProcessor:
    """Scans, filters due subscriptions and charges them with the merchant key."""

    def __init__(
        self,
        rpc: SolanaRPCClient,
        signer: MerchantSigner,
        program_id: AddressLike,
        scanner: Optional[SubscriptionScanner] = None,
        concurrency: int = 1,
        skip_expired: bool = True,
        confirm_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rpc = rpc
        self.signer = signer
        self.program_id = to_pubkey(program_id)
        self.scanner = scanner or SubscriptionScanner(rpc, self.program_id)
        self.concurrency = max(1, concurrency)
        self.skip_expired = skip_expired
        self.confirm_timeout = confirm_timeout
        self.clock = clock

    def classify(self, record: Subscription, now: int) -> Optional[SkippedRecord]:
        """Return a skip classification, or None when the record should be charged."""
        address = str(record.address)
        if not record.is_active:
            return SkippedRecord(address=address, reason="inactive")
        if self.skip_expired and record.is_expired(now):
            return SkippedRecord(
                address=address,
                reason="expired",
                detail=f"expired at {record.expires_at}",
            )
        if not record.is_due(now):
            remaining = record.seconds_until_due(now)
            return SkippedRecord(
                address=address,
                reason="not_ready",
                detail=f"{-(-remaining // 60)}m remaining",
                remaining_seconds=remaining,
            )
        return None

    async def charge(self, record: Subscription) -> str:
        """Build, sign, submit and confirm one charge; return the signature."""
        instruction = build_charge_instruction(
            record.address,
            record.user_token_account,
            record.recipient_token_account,
            self.program_id,
        )
        blockhash = await self.rpc.get_latest_blockhash()
        transaction = Transaction.build([instruction], self.signer.public_key, blockhash)
        transaction.sign([self.signer])
        signature = await self.rpc.send_transaction(transaction.serialize())
        await self.rpc.confirm_transaction(signature, timeout=self.confirm_timeout)
        return signature

    async def _process(self, record: Subscription, now: int, collector: _ResultCollector) -> None:
        skip = self.classify(record, now)
        if skip is not None:
            logger.info("Skipping %s: %s %s", record.address.short(), skip.reason, skip.detail or "")
            collector.skipped(skip)
            return

        logger.info(
            "Charging %s: %s units every %ss",
            record.address.short(),
            record.amount_per_period,
            record.interval_seconds,
        )
        try:
            signature = await self.charge(record)
        except Exception as exc:
            logger.exception("Charge failed for %s: %s", record.address, exc)
            collector.failed(
                ChargeFailure(
                    address=str(record.address),
                    error=str(exc) or exc.__class__.__name__,
                    signature=getattr(exc, "signature", None),
                )
            )
            return
        logger.info("Charged %s: %s", record.address.short(), signature)
        collector.charged(signature)

    async def run_charge_batch(self) -> ChargeBatchResult:
        scan = await self.scanner.scan()
        collector = _ResultCollector(total=scan.total)
        collector.result.malformed.extend(scan.malformed)
        now = int(self.clock())

        if self.concurrency == 1:
            for record in scan.records:
                await self._process(record, now, collector)
        else:
            semaphore = asyncio.Semaphore(self.concurrency)

            async def worker(record: Subscription) -> None:
                async with semaphore:
                    await self._process(record, now, collector)

            await asyncio.gather(*(worker(record) for record in scan.records))

        result = collector.result
        logger.info(
            "Charge batch complete: total=%s charged=%s skipped=%s errors=%s malformed=%s",
            result.total,
            len(result.charged),
            len(result.skipped),
            len(result.errors),
            len(result.malformed),
        )
        return result
