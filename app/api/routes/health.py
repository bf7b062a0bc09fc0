"""
Health API Routes
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.dependencies import get_rpc_client
from app.config import settings
from app.integrations.solana_rpc import SolanaRPCClient

router = APIRouter()


@router.get("/health")
async def health_check(rpc: SolanaRPCClient = Depends(get_rpc_client)) -> JSONResponse:
    """Application and ledger RPC health"""
    rpc_ok = await rpc.get_health()
    return JSONResponse(
        status_code=status.HTTP_200_OK if rpc_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if rpc_ok else "degraded",
            "rpc": {"ok": rpc_ok, "url": settings.solana_rpc_url},
        },
    )


@router.get("/health/config")
async def check_configuration() -> dict:
    """Report which billing settings are present without exposing values."""
    checks = {
        "subscription_program_id": bool(settings.subscription_program_id),
        "merchant_keypair_secret": settings.merchant_keypair_secret is not None,
        "merchant_wallet": bool(settings.merchant_wallet),
    }
    return {
        "config": checks,
        "ready": checks["subscription_program_id"] and checks["merchant_keypair_secret"],
        "missing": [k for k, v in checks.items() if not v],
    }
