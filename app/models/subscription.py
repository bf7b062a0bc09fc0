"""On-ledger subscription record as decoded from program account storage."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.program.pubkey import Pubkey

TOKEN_DECIMALS = 6


@dataclass(frozen=True)
class Subscription:
    authority: Pubkey
    recipient: Pubkey
    user_token_account: Pubkey
    recipient_token_account: Pubkey
    token_mint: Pubkey
    amount_per_period: int
    interval_seconds: int
    last_charge_timestamp: int
    created_at: int
    expires_at: Optional[int]
    is_active: bool
    total_charged: int
    bump: int
    address: Optional[Pubkey] = None

    def seconds_until_due(self, now: int) -> int:
        """Seconds left before another charge is allowed; 0 when due."""
        elapsed = now - self.last_charge_timestamp
        return max(0, self.interval_seconds - elapsed)

    def is_due(self, now: int) -> bool:
        return now - self.last_charge_timestamp >= self.interval_seconds

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": str(self.address) if self.address else None,
            "authority": str(self.authority),
            "recipient": str(self.recipient),
            "user_token_account": str(self.user_token_account),
            "recipient_token_account": str(self.recipient_token_account),
            "token_mint": str(self.token_mint),
            "amount_per_period": self.amount_per_period,
            "amount_per_period_ui": self.amount_per_period / 10**TOKEN_DECIMALS,
            "interval_seconds": self.interval_seconds,
            "last_charge_timestamp": self.last_charge_timestamp,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "is_active": self.is_active,
            "total_charged": self.total_charged,
            "total_charged_ui": self.total_charged / 10**TOKEN_DECIMALS,
            "bump": self.bump,
        }
