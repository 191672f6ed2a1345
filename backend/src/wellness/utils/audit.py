"""Audit logging decorators for booking changes.

Provides decorators to automatically log create/update operations with user
context and change tracking. Audit failures are logged and never fail the
business operation.
"""
from functools import wraps
from typing import Callable, Optional
from uuid import UUID, uuid4
import structlog

from sqlalchemy.ext.asyncio import AsyncSession

from wellness.models.audit_log import AuditLog

logger = structlog.get_logger(__name__)


async def log_audit(
    db: AsyncSession,
    entity_type: str,
    entity_id: UUID,
    action: str,
    user_id: Optional[str] = None,
    changes: Optional[dict] = None,
    request_id: Optional[str] = None,
) -> None:
    """
    Log an audit entry.

    Args:
        db: Database session
        entity_type: Type of entity (booking)
        entity_id: Entity UUID
        action: Action performed (create, update)
        user_id: User who performed the action
        changes: Dictionary of changes {field: {old: X, new: Y}}
        request_id: Request correlation ID
    """
    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        changes=changes or {},
        request_id=request_id or str(uuid4()),
    )

    db.add(audit_log)
    await db.flush()

    logger.info(
        "audit_log_created",
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        change_count=len(changes) if changes else 0,
    )


def _user_id(kwargs: dict) -> Optional[str]:
    current_user = kwargs.get("current_user") or {}
    return current_user.get("sub")


def audit_create(entity_type: str):
    """
    Decorator to audit create operations.

    Usage:
        @audit_create("booking")
        async def create_booking(self, booking_data: BookingCreate, current_user: dict):
            booking = Booking(...)
            self.db.add(booking)
            await self.db.flush()
            return booking

    Args:
        entity_type: Type of entity being created
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            result = await func(self, *args, **kwargs)

            if hasattr(result, "id"):
                try:
                    await log_audit(
                        db=self.db,
                        entity_type=entity_type,
                        entity_id=result.id,
                        action="create",
                        user_id=_user_id(kwargs),
                        request_id=kwargs.get("request_id"),
                    )
                except Exception as e:
                    logger.warning(
                        "audit_log_failed",
                        entity_type=entity_type,
                        action="create",
                        error=str(e),
                    )

            return result

        return wrapper
    return decorator


def audit_update(entity_type: str):
    """
    Decorator to audit update operations.

    The wrapped coroutine returns ``(entity, old_values)``; the decorator records
    the fields whose value changed and returns ``entity`` to the caller.

    Usage:
        @audit_update("booking")
        async def reschedule_booking(self, booking_id: UUID, data: BookingReschedule, current_user: dict):
            booking = await self.get_booking(booking_id)
            old_values = {"start_time": booking.start_time}
            booking.start_time = data.start_time
            return booking, old_values

    Args:
        entity_type: Type of entity being updated
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            result = await func(self, *args, **kwargs)

            if isinstance(result, tuple) and len(result) == 2:
                entity, old_values = result
            else:
                entity, old_values = result, {}

            changes = {}
            for field, old_value in old_values.items():
                new_value = getattr(entity, field, None)
                if old_value != new_value:
                    changes[field] = {
                        "old": str(old_value) if old_value is not None else None,
                        "new": str(new_value) if new_value is not None else None,
                    }

            if hasattr(entity, "id") and changes:
                try:
                    await log_audit(
                        db=self.db,
                        entity_type=entity_type,
                        entity_id=entity.id,
                        action="update",
                        user_id=_user_id(kwargs),
                        changes=changes,
                        request_id=kwargs.get("request_id"),
                    )
                except Exception as e:
                    logger.warning(
                        "audit_log_failed",
                        entity_type=entity_type,
                        action="update",
                        error=str(e),
                    )

            return entity

        return wrapper
    return decorator
