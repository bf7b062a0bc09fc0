"""Shared API dependencies."""
from __future__ import annotations

from typing import AsyncIterator, Callable

from fastapi import Request

from app.config import settings
from app.integrations.solana_rpc import SolanaRPCClient
from app.services import billing
from app.services.rate_limiter import FixedWindowRateLimiter


def get_rate_limiter() -> FixedWindowRateLimiter:
    return billing.rate_limiter


def get_processor_session_factory() -> Callable:
    """Factory returning an async context manager that yields a ready processor."""
    return billing.charge_processor_session


async def get_rpc_client() -> AsyncIterator[SolanaRPCClient]:
    async with SolanaRPCClient(settings.solana_rpc_url, timeout=settings.rpc_timeout_seconds) as rpc:
        yield rpc


def client_identifier(request: Request) -> str:
    """Caller address as resolved by the proxy-headers middleware, else ``unknown``.

    X-Forwarded-For is only applied for peers listed in FORWARDED_ALLOW_IPS, so
    a direct caller cannot pick its own identity by sending the header.
    """
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


__all__ = [
    "client_identifier",
    "get_processor_session_factory",
    "get_rate_limiter",
    "get_rpc_client",
]
