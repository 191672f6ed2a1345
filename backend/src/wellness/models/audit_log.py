"""Audit log model for tracking booking changes."""
from sqlalchemy import JSON, Column, String, Uuid

from wellness.models.base import Base


class AuditLog(Base):
    """
    Audit log for compliance.

    Tracks create/update operations on bookings with user context.
    """

    __tablename__ = "audit_logs"

    entity_type = Column(String, nullable=False, index=True)  # booking
    entity_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    action = Column(String, nullable=False)  # create, update
    user_id = Column(String, nullable=True)  # User who performed action
    changes = Column(JSON, nullable=False, default=dict)  # {field: {old: X, new: Y}}
    request_id = Column(String, nullable=True)  # Correlation ID from request

    def __repr__(self) -> str:
        """String representation."""
        return f"<AuditLog(entity_type={self.entity_type}, entity_id={self.entity_id}, action={self.action})>"
