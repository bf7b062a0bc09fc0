"""
Run one recurring-charge batch from the command line.

Usage:
    python -m scripts.charge_subscriptions

Reads SOLANA_RPC_URL, SUBSCRIPTION_PROGRAM_ID and MERCHANT_KEYPAIR_SECRET from
the environment (or .env).
"""
import asyncio
import logging
import sys

from app.config import settings
from app.core.exceptions import ConfigurationError
from app.services.billing import charge_processor_session


async def run_once() -> int:
    print("=== SUBSCRIPTION CHARGE RUN ===")
    print(f"RPC: {settings.solana_rpc_url}")
    print(f"Program: {settings.subscription_program_id or '(not set)'}")
    print("")

    try:
        async with charge_processor_session() as processor:
            print(f"Merchant wallet: {processor.signer.public_key}")
            result = await processor.run_charge_batch()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}")
        return 1

    print("")
    print(f"Total accounts: {result.total}")
    print(f"Charged:        {len(result.charged)}")
    for signature in result.charged:
        print(f"  - {signature}")
    print(f"Skipped:        {len(result.skipped)}")
    for skip in result.skipped:
        print(f"  - {skip.address[:8]}... {skip.reason} {skip.detail or ''}".rstrip())
    print(f"Malformed:      {len(result.malformed)}")
    for bad in result.malformed:
        print(f"  - {bad.address[:8]}... {bad.reason}")
    print(f"Errors:         {len(result.errors)}")
    for failure in result.errors:
        print(f"  - {failure.address[:8]}... {failure.error}")
    return 0


def main() -> None:
    logging.basicConfig(level=settings.log_level, format="%(levelname)s [%(name)s] %(message)s")
    sys.exit(asyncio.run(run_once()))


if __name__ == "__main__":
    main()
