from __future__ import annotations

import asyncio
import base64
import binascii
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import IntegrationError, InvalidAddressError, RPCError, TransactionError
from app.program.pubkey import AddressLike, Pubkey, to_pubkey

logger = logging.getLogger(__name__)

CONFIRMED_STATUSES = ("confirmed", "finalized")


@dataclass(frozen=True)
class ProgramAccount:
    pubkey: Pubkey
    data: bytes
    lamports: int = 0
    owner: Optional[str] = None
    # Set when the node returned data this client could not decode.
    decode_error: Optional[str] = None


@dataclass(frozen=True)
class AccountInfo:
    data: bytes
    lamports: int
    owner: str


def _decode_account_data(raw: Any) -> bytes:
    # RPC returns [payload, encoding] for base64 requests.
    if isinstance(raw, list) and raw:
        payload, encoding = raw[0], (raw[1] if len(raw) > 1 else "base64")
        if encoding != "base64":
            raise IntegrationError(f"Unsupported account encoding: {encoding}")
        raw = payload
    if isinstance(raw, str):
        try:
            return base64.b64decode(raw, validate=True)
        except binascii.Error as exc:
            raise IntegrationError(f"Invalid base64 account data: {exc}") from exc
    raise IntegrationError("Unexpected account data shape in RPC response")


class SolanaRPCClient:
    """Minimal async JSON-RPC client for the ledger node."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = None,
        commitment: str = "confirmed",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url or settings.solana_rpc_url
        self.commitment = commitment
        self._ids = itertools.count(1)
        self.client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=timeout or settings.rpc_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "SolanaRPCClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("RPC %s transport failure: %s", method, exc)
            raise IntegrationError(f"{method} request failed: {exc}") from exc
        body = response.json()
        error = body.get("error")
        if error:
            raise RPCError(method, error.get("code"), error.get("message", "unknown error"), error.get("data"))
        return body.get("result")

    async def get_program_accounts(self, program_id: AddressLike) -> List[ProgramAccount]:
        result = await self.call(
            "getProgramAccounts",
            [str(to_pubkey(program_id)), {"encoding": "base64", "commitment": self.commitment}],
        )
        accounts: List[ProgramAccount] = []
        for item in result or []:
            try:
                pubkey = Pubkey.from_string(item.get("pubkey", ""))
            except InvalidAddressError as exc:
                logger.warning("Dropping program account with unreadable address: %s", exc)
                continue
            account = item.get("account") or {}
            data, decode_error = b"", None
            try:
                data = _decode_account_data(account.get("data"))
            except IntegrationError as exc:
                logger.warning("Account %s data not decodable: %s", pubkey.short(), exc)
                decode_error = str(exc)
            accounts.append(
                ProgramAccount(
                    pubkey=pubkey,
                    data=data,
                    lamports=int(account.get("lamports") or 0),
                    owner=account.get("owner"),
                    decode_error=decode_error,
                )
            )
        return accounts

    async def get_account_info(self, address: AddressLike) -> Optional[AccountInfo]:
        result = await self.call(
            "getAccountInfo",
            [str(to_pubkey(address)), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if not value:
            return None
        return AccountInfo(
            data=_decode_account_data(value.get("data")),
            lamports=int(value.get("lamports") or 0),
            owner=value.get("owner", ""),
        )

    async def get_latest_blockhash(self) -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            return result["value"]["blockhash"]
        except (KeyError, TypeError) as exc:
            raise IntegrationError("getLatestBlockhash returned no blockhash") from exc

    async def send_transaction(self, wire_transaction: bytes, skip_preflight: bool = False) -> str:
        return await self.call(
            "sendTransaction",
            [
                base64.b64encode(wire_transaction).decode("ascii"),
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.commitment,
                },
            ],
        )

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self.call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        values = (result or {}).get("value") or [None]
        return values[0]

    async def confirm_transaction(
        self,
        signature: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Poll until the signature reaches ``confirmed`` or fails.

        Raises ``TransactionError`` on an on-chain error or when ``timeout``
        elapses; a timed-out transaction may still land later.
        """
        timeout = timeout if timeout is not None else settings.confirm_timeout_seconds
        poll_interval = poll_interval if poll_interval is not None else settings.confirm_poll_seconds
        deadline = time.monotonic() + timeout
        while True:
            status = await self.get_signature_status(signature)
            if status:
                if status.get("err"):
                    raise TransactionError(f"Transaction failed: {status['err']}", signature=signature)
                if status.get("confirmationStatus") in CONFIRMED_STATUSES:
                    return status
            if time.monotonic() >= deadline:
                raise TransactionError(
                    f"Transaction not confirmed within {timeout:.0f}s", signature=signature
                )
            await asyncio.sleep(poll_interval)

    async def get_health(self) -> bool:
        try:
            return await self.call("getHealth") == "ok"
        except (IntegrationError, ValueError) as exc:
            logger.warning("RPC health check failed: %s", exc)
            return False

    async def close(self) -> None:
        await self.client.aclose()
