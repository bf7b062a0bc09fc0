"""
Subscription Billing - FastAPI Application
Recurring-charge trigger and wire-level helpers for the on-ledger billing program
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.config import settings
from app.services.billing import rate_limit_sweeper

from app.api.routes import health
from app.api.v1 import subscriptions

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting %s...", settings.app_name)
    logger.info("API running on %s environment, RPC %s", settings.app_env, settings.solana_rpc_url)
    if not settings.subscription_program_id or settings.merchant_keypair_secret is None:
        logger.warning("Billing program id or merchant key missing; charge triggers will fail")
    rate_limit_sweeper.start()
    app.state.rate_limit_sweeper = rate_limit_sweeper
    yield
    await rate_limit_sweeper.stop()
    logger.info("Shutting down %s...", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Recurring subscription billing for the on-ledger subscription program",
    version="1.0.0",
    lifespan=lifespan,
)

# Caller address for rate limiting; forwarded headers only from trusted proxies.
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.forwarded_allow_ips)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root() -> dict:
    return {
        "name": settings.app_name,
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(health.router, prefix=settings.api_v1_prefix, tags=["Health"])
app.include_router(
    subscriptions.router,
    prefix=f"{settings.api_v1_prefix}/subscriptions",
    tags=["Subscriptions"],
)
