"""Pydantic schemas for credits and the credit ledger."""
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wellness.models.credit import CreditType
from wellness.models.credit_transaction import TransactionType


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CancellationCreditCreate(BaseModel):
    """Schema for issuing a credit after an appointment cancellation."""

    user_id: UUID = Field(..., description="User receiving the credit")
    appointment_id: UUID = Field(..., description="Cancelled appointment that produces the credit")
    amount: int = Field(..., ge=0, description="Credit amount in minor currency units")
    description: str | None = Field(default=None, description="Free-text description")
    expires_at: datetime | None = Field(default=None, description="Expiration (None for no expiration)")

    @field_validator("expires_at")
    @classmethod
    def naive_utc(cls, value: datetime | None) -> datetime | None:
        """Store expirations as naive UTC."""
        return _naive_utc(value)


class ManualCreditCreate(BaseModel):
    """Schema for an admin-granted credit."""

    user_id: UUID = Field(..., description="User receiving the credit")
    amount: int = Field(..., gt=0, description="Credit amount in minor currency units")
    credit_type: CreditType = Field(default=CreditType.ADMIN_ADJUSTMENT, description="Origin of the credit")
    description: str = Field(..., min_length=1, description="Reason for the grant")
    expires_at: datetime | None = Field(
        default=None, description="Expiration (defaults to the configured credit lifetime)"
    )

    @field_validator("expires_at")
    @classmethod
    def naive_utc(cls, value: datetime | None) -> datetime | None:
        """Store expirations as naive UTC."""
        return _naive_utc(value)


class CreditUse(BaseModel):
    """Schema for redeeming credits against an appointment."""

    user_id: UUID
    appointment_id: UUID
    amount: int = Field(..., gt=0, description="Amount to redeem in minor currency units")


class CreditUseResult(BaseModel):
    """Result of a redemption."""

    success: bool
    balance: int


class CancellationQuote(BaseModel):
    """Schema for previewing the credit a cancellation would earn."""

    appointment_amount: int = Field(..., ge=0, description="Price of the appointment in minor units")
    appointment_at: datetime = Field(..., description="Scheduled start in clinic wall-clock time")
    cancelled_at: datetime | None = Field(default=None, description="Cancellation instant in clinic wall-clock time (defaults to now)")


class CancellationQuoteResult(BaseModel):
    """Tier schedule outcome."""

    credit_amount: int
    refund_percentage: int
    hours_until: float
    message: str

    model_config = ConfigDict(from_attributes=True)


class Credit(BaseModel):
    """Schema for returning credit data."""

    id: UUID
    user_id: UUID
    amount: int
    credit_type: CreditType
    description: str | None
    expires_at: datetime | None
    is_used: bool
    used_at: datetime | None
    used_in_appointment_id: UUID | None
    source_appointment_id: UUID | None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditCreated(BaseModel):
    """Identifier of a newly issued credit."""

    credit_id: UUID


class CreditTransaction(BaseModel):
    """Schema for returning ledger entries."""

    id: UUID
    user_id: UUID
    credit_id: UUID | None
    transaction_type: TransactionType
    amount: int
    balance_before: int
    balance_after: int
    description: str | None
    appointment_id: UUID | None
    created_by: UUID | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditBalance(BaseModel):
    """Spendable balance of a user."""

    user_id: UUID
    balance: int


class CreditsSummary(BaseModel):
    """Per-user credit totals."""

    user_id: UUID
    available_balance: int
    total_earned: int
    total_used: int
    total_expired: int
    active_credits_count: int


class ExpirySweepResult(BaseModel):
    """Outcome of the expiry sweep."""

    expired_count: int
