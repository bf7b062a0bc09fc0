from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from app.config import settings

SkipReason = Literal["inactive", "expired", "not_ready"]
MalformedReason = Literal["too_small", "wrong_discriminator", "garbage_values"]

# Terms outside these bounds would be stored as records the scanner rejects.
MAX_AMOUNT = settings.max_plausible_amount
MAX_INTERVAL = settings.max_interval_seconds
I64_MAX = 2**63 - 1


class SkippedRecord(BaseModel):
    address: str
    reason: SkipReason
    detail: Optional[str] = None
    remaining_seconds: Optional[int] = None


class MalformedRecord(BaseModel):
    address: str
    reason: MalformedReason
    detail: Optional[str] = None


class ChargeFailure(BaseModel):
    address: str
    error: str
    signature: Optional[str] = None


class ChargeBatchResult(BaseModel):
    total: int = 0
    charged: list[str] = Field(default_factory=list)
    skipped: list[SkippedRecord] = Field(default_factory=list)
    errors: list[ChargeFailure] = Field(default_factory=list)
    malformed: list[MalformedRecord] = Field(default_factory=list)

    @property
    def accounted(self) -> int:
        return len(self.charged) + len(self.skipped) + len(self.errors) + len(self.malformed)


class ChargeTriggerResponse(BaseModel):
    success: bool
    results: ChargeBatchResult
    message: str


class InitializeSubscriptionRequest(BaseModel):
    user_wallet: str
    plan: Optional[str] = None
    amount_per_period: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT)
    interval_seconds: Optional[int] = Field(default=None, gt=0, le=MAX_INTERVAL)
    expires_at: Optional[int] = Field(default=None, gt=0, le=I64_MAX)

    @model_validator(mode="after")
    def check_terms(self) -> "InitializeSubscriptionRequest":
        if self.plan is None and (self.amount_per_period is None or self.interval_seconds is None):
            raise ValueError("Provide a plan or both amount_per_period and interval_seconds")
        return self


class UpdateSubscriptionRequest(BaseModel):
    user_wallet: str
    new_amount: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT)
    new_interval: Optional[int] = Field(default=None, gt=0, le=MAX_INTERVAL)
    new_expires_at: Optional[int] = Field(default=None, gt=0, le=I64_MAX)


class WalletRequest(BaseModel):
    user_wallet: str


class InstructionBundle(BaseModel):
    subscription_address: str
    instructions: list[dict[str, Any]]
