"""SQLAlchemy ORM models for the wellness booking core."""
# Import all models here to ensure they are registered with Alembic

from wellness.models.base import Base
from wellness.models.credit import Credit, CreditType
from wellness.models.credit_transaction import CreditTransaction, TransactionType
from wellness.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, ResourceType
from wellness.models.audit_log import AuditLog

__all__ = [
    "Base",
    "Credit",
    "CreditType",
    "CreditTransaction",
    "TransactionType",
    "ACTIVE_BOOKING_STATUSES",
    "Booking",
    "BookingStatus",
    "ResourceType",
    "AuditLog",
]
