"""
Subscription API Routes
Charge trigger, record lookup and unsigned instruction builders
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    client_identifier,
    get_processor_session_factory,
    get_rate_limiter,
    get_rpc_client,
)
from app.config import PLANS, settings
from app.core.exceptions import (
    ConfigurationError,
    InvalidAddressError,
    ParseError,
    RateLimitExceeded,
)
from app.integrations.solana_rpc import SolanaRPCClient
from app.program import instructions as ix
from app.program.addresses import derive_associated_token_address, derive_subscription_address
from app.program.codec import decode_subscription
from app.program.pubkey import Pubkey
from app.schemas.subscription import (
    ChargeTriggerResponse,
    InitializeSubscriptionRequest,
    InstructionBundle,
    UpdateSubscriptionRequest,
    WalletRequest,
)
from app.services.billing import plan_terms, require_program_id, resolve_merchant_wallet
from app.services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter()


def enforce_rate_limit(limiter: FixedWindowRateLimiter, caller_id: str) -> None:
    decision = limiter.check(caller_id)
    if not decision.allowed:
        raise RateLimitExceeded(decision.retry_after_seconds or 1)


def _parse_wallet(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except InvalidAddressError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _billing_context() -> tuple[Pubkey, Pubkey]:
    try:
        return require_program_id(), resolve_merchant_wallet()
    except ConfigurationError as exc:
        logger.error("Subscription API misconfigured: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        ) from exc


@router.post("/charge", response_model=ChargeTriggerResponse)
async def trigger_charge_batch(
    request: Request,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    session_factory: Callable = Depends(get_processor_session_factory),
):
    """Run one charge batch over every subscription record."""
    caller_id = client_identifier(request)
    try:
        enforce_rate_limit(limiter, caller_id)
    except RateLimitExceeded as exc:
        logger.warning("Charge trigger throttled for %s (retry in %ss)", caller_id, exc.retry_after_seconds)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Rate limit exceeded. Please wait before trying again.",
                "retry_after": exc.retry_after_seconds,
            },
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    try:
        async with session_factory() as processor:
            results = await processor.run_charge_batch()
    except ConfigurationError as exc:
        logger.error("Charge trigger misconfigured: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Server configuration error", "detail": str(exc)},
        )
    except Exception as exc:
        logger.exception("Error processing subscriptions: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or "Failed to process subscriptions"},
        )

    return ChargeTriggerResponse(
        success=True,
        results=results,
        message=f"Charged {len(results.charged)} subscription(s)",
    )


@router.get("/plans")
async def list_plans() -> Dict[str, Any]:
    return {"items": list(PLANS.values())}


@router.get("/{authority}")
async def get_subscription(
    authority: str,
    rpc: SolanaRPCClient = Depends(get_rpc_client),
) -> Dict[str, Any]:
    """Look up the record a wallet holds with this merchant."""
    wallet = _parse_wallet(authority)
    program_id, merchant = _billing_context()
    address, _ = derive_subscription_address(wallet, merchant, program_id)

    account = await rpc.get_account_info(address)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    try:
        record = decode_subscription(account.data, address)
    except ParseError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"reason": exc.reason, "message": str(exc)},
        ) from exc
    return {"subscription": record.to_dict(), "has_active_subscription": record.is_active}


@router.post("/instructions/initialize", response_model=InstructionBundle)
async def build_initialize(
    payload: InitializeSubscriptionRequest,
    rpc: SolanaRPCClient = Depends(get_rpc_client),
) -> InstructionBundle:
    """Unsigned instructions that open a subscription for ``user_wallet``."""
    wallet = _parse_wallet(payload.user_wallet)
    program_id, merchant = _billing_context()
    mint = Pubkey.from_string(settings.usdc_mint)

    if payload.plan is not None:
        try:
            amount, interval = plan_terms(payload.plan)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown plan {payload.plan}") from exc
    else:
        amount, interval = payload.amount_per_period, payload.interval_seconds

    address, _ = derive_subscription_address(wallet, merchant, program_id)
    if await rpc.get_account_info(address) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Subscription already exists. Cancel the existing subscription first.",
        )

    bundle = []
    for owner in (wallet, merchant):
        token_account = derive_associated_token_address(mint, owner)
        if await rpc.get_account_info(token_account) is None:
            logger.info("Token account %s missing for %s; adding create instruction", token_account, owner)
            bundle.append(ix.build_create_associated_token_account_instruction(wallet, owner, mint))

    bundle.append(
        ix.build_initialize_instruction(
            wallet,
            merchant,
            mint,
            program_id,
            amount_per_period=amount,
            interval_seconds=interval,
            expires_at=payload.expires_at,
        )
    )
    return InstructionBundle(
        subscription_address=str(address),
        instructions=[instruction.to_dict() for instruction in bundle],
    )


@router.post("/instructions/cancel", response_model=InstructionBundle)
async def build_cancel(payload: WalletRequest) -> InstructionBundle:
    wallet = _parse_wallet(payload.user_wallet)
    program_id, merchant = _billing_context()
    address, _ = derive_subscription_address(wallet, merchant, program_id)
    instruction = ix.build_cancel_instruction(wallet, merchant, settings.usdc_mint, program_id)
    return InstructionBundle(subscription_address=str(address), instructions=[instruction.to_dict()])


@router.post("/instructions/cleanup", response_model=InstructionBundle)
async def build_cleanup(payload: WalletRequest) -> InstructionBundle:
    wallet = _parse_wallet(payload.user_wallet)
    program_id, merchant = _billing_context()
    address, _ = derive_subscription_address(wallet, merchant, program_id)
    instruction = ix.build_cleanup_instruction(wallet, merchant, program_id)
    return InstructionBundle(subscription_address=str(address), instructions=[instruction.to_dict()])


@router.post("/instructions/update", response_model=InstructionBundle)
async def build_update(payload: UpdateSubscriptionRequest) -> InstructionBundle:
    wallet = _parse_wallet(payload.user_wallet)
    program_id, merchant = _billing_context()
    address, _ = derive_subscription_address(wallet, merchant, program_id)
    instruction = ix.build_update_instruction(
        wallet,
        merchant,
        program_id,
        new_amount=payload.new_amount,
        new_interval=payload.new_interval,
        new_expires_at=payload.new_expires_at,
    )
    return InstructionBundle(subscription_address=str(address), instructions=[instruction.to_dict()])
