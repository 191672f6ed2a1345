"""Credit transaction model, the audit ledger of balance changes."""
from sqlalchemy import CheckConstraint, Column, Enum as SQLEnum, ForeignKey, Integer, String, Uuid
import enum

from wellness.models.base import Base, enum_values


class TransactionType(enum.Enum):
    """Kind of balance-affecting event."""

    EARNED = "earned"
    USED = "used"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    ADJUSTMENT = "adjustment"


class CreditTransaction(Base):
    """
    Immutable ledger entry documenting one change of a user's credit balance.

    ``balance_after`` always equals ``balance_before + amount``; used and
    expired entries carry a negative amount.
    """

    __tablename__ = "credit_transactions"

    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    credit_id = Column(Uuid(as_uuid=True), ForeignKey("user_credits.id"), nullable=True, index=True)
    transaction_type = Column(SQLEnum(TransactionType, values_callable=enum_values), nullable=False)
    amount = Column(Integer, nullable=False)  # Signed, minor currency units
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(String, nullable=True)
    appointment_id = Column(Uuid(as_uuid=True), nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)

    __table_args__ = (
        CheckConstraint("balance_after = balance_before + amount", name="ck_credit_transactions_balance"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CreditTransaction(id={self.id}, user_id={self.user_id}, "
            f"type={self.transaction_type.value}, amount={self.amount})>"
        )
