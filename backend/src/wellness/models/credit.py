"""Credit model for spendable account credits."""
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, Index, Integer, String, Uuid
import enum

from wellness.models.base import Base, enum_values


class CreditType(enum.Enum):
    """Origin of a credit grant."""

    CANCELLATION = "cancellation"
    REFUND = "refund"
    PROMOTION = "promotion"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    MIGRATION = "migration"


class Credit(Base):
    """
    Monetary grant to a user, spendable against future bookings.

    Rows are append-only. The only mutation is flipping ``is_used`` once, when
    the credit is redeemed or swept by the expiry job.
    """

    __tablename__ = "user_credits"

    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Minor currency units
    credit_type = Column(SQLEnum(CreditType, values_callable=enum_values), nullable=False)
    description = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    used_in_appointment_id = Column(Uuid(as_uuid=True), nullable=True)
    source_appointment_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_user_credits_amount_non_negative"),
        CheckConstraint("NOT is_used OR used_at IS NOT NULL", name="ck_user_credits_used_at"),
        Index("ix_user_credits_user_available", "user_id", "is_used", "expires_at"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Credit(id={self.id}, user_id={self.user_id}, amount={self.amount}, used={self.is_used})>"
