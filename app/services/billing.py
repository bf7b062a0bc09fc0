"""
Wiring between settings and the billing services.

The rate limiter is process-wide and lives for the life of the process; the
RPC client and processor are built per trigger so every run reads the current
configuration and closes its connections.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Optional

from app.config import PLANS, Settings, settings
from app.core.exceptions import ConfigurationError, InvalidAddressError
from app.core.security import MerchantSigner, load_merchant_signer
from app.integrations.solana_rpc import SolanaRPCClient
from app.models.subscription import TOKEN_DECIMALS
from app.program.pubkey import Pubkey
from app.services.charge_processor import ChargeBatchProcessor
from app.services.rate_limiter import FixedWindowRateLimiter, RateLimitSweeper
from app.services.subscription_scanner import SubscriptionScanner

logger = logging.getLogger(__name__)

rate_limiter = FixedWindowRateLimiter(
    window_seconds=settings.rate_limit_window_seconds,
    max_requests=settings.rate_limit_max_requests,
)
rate_limit_sweeper = RateLimitSweeper(rate_limiter, interval_seconds=settings.rate_limit_sweep_seconds)


def require_program_id(config: Optional[Settings] = None) -> Pubkey:
    config = config or settings
    if not config.subscription_program_id:
        raise ConfigurationError("SUBSCRIPTION_PROGRAM_ID is not configured")
    try:
        return Pubkey.from_string(config.subscription_program_id)
    except InvalidAddressError as exc:
        raise ConfigurationError(f"SUBSCRIPTION_PROGRAM_ID is invalid: {exc}") from exc


def resolve_merchant_wallet(config: Optional[Settings] = None) -> Pubkey:
    """Recipient of every subscription: MERCHANT_WALLET, else the signer's key."""
    config = config or settings
    if config.merchant_wallet:
        try:
            return Pubkey.from_string(config.merchant_wallet)
        except InvalidAddressError as exc:
            raise ConfigurationError(f"MERCHANT_WALLET is invalid: {exc}") from exc
    return load_merchant_signer(config).public_key


def plan_terms(plan_id: str) -> tuple[int, int]:
    """Return ``(amount_per_period, interval_seconds)`` in smallest units for a plan."""
    plan = PLANS.get(plan_id)
    if plan is None:
        raise KeyError(plan_id)
    amount = int(Decimal(plan["price"]) * 10**TOKEN_DECIMALS)
    return amount, int(plan["interval"])


def build_scanner(rpc: SolanaRPCClient, config: Optional[Settings] = None) -> SubscriptionScanner:
    config = config or settings
    return SubscriptionScanner(
        rpc,
        require_program_id(config),
        max_amount=config.max_plausible_amount,
        max_interval_seconds=config.max_interval_seconds,
    )


def build_charge_processor(
    rpc: SolanaRPCClient,
    signer: Optional[MerchantSigner] = None,
    config: Optional[Settings] = None,
) -> ChargeBatchProcessor:
    config = config or settings
    program_id = require_program_id(config)
    signer = signer or load_merchant_signer(config)
    return ChargeBatchProcessor(
        rpc=rpc,
        signer=signer,
        program_id=program_id,
        scanner=build_scanner(rpc, config),
        concurrency=config.charge_concurrency,
        skip_expired=config.skip_expired,
        confirm_timeout=config.confirm_timeout_seconds,
    )


@asynccontextmanager
async def charge_processor_session(config: Optional[Settings] = None) -> AsyncIterator[ChargeBatchProcessor]:
    """Validate configuration first, then open an RPC client for one batch run."""
    config = config or settings
    require_program_id(config)
    signer = load_merchant_signer(config)
    logger.info("Merchant signer loaded: %s", signer.public_key)
    async with SolanaRPCClient(config.solana_rpc_url, timeout=config.rpc_timeout_seconds) as rpc:
        yield build_charge_processor(rpc, signer=signer, config=config)
