"""Role-Based Access Control (RBAC) decorator and utilities.

Implements a 3-tier role hierarchy:
- Admin: Full access, including manual credits and expiry sweeps
- Staff: Manage bookings and issue cancellation credits for any patient
- Patient: Manage own bookings and read own credits
"""
from enum import Enum
from functools import wraps
from typing import Callable, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
import structlog

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """User roles with hierarchical permissions."""

    ADMIN = "admin"
    STAFF = "staff"
    PATIENT = "patient"


# Role hierarchy: higher roles inherit permissions from lower roles
ROLE_HIERARCHY = {
    Role.ADMIN: [Role.ADMIN, Role.STAFF, Role.PATIENT],
    Role.STAFF: [Role.STAFF, Role.PATIENT],
    Role.PATIENT: [Role.PATIENT],
}


def check_role_hierarchy(user_role: Optional[str], required_roles: List[Role]) -> bool:
    """
    Check if user role satisfies any of the required roles (considering hierarchy).

    Args:
        user_role: User's role
        required_roles: List of acceptable roles

    Returns:
        True if user role satisfies requirement
    """
    try:
        user_role_enum = Role(user_role)
    except ValueError:
        return False

    user_allowed_roles = ROLE_HIERARCHY.get(user_role_enum, [])
    return any(req_role in user_allowed_roles for req_role in required_roles)


def ensure_self_or_staff(current_user: dict, user_id: UUID) -> None:
    """
    Allow patients to act only on their own records.

    Raises:
        HTTPException: 403 if a patient targets another user
    """
    if check_role_hierarchy(current_user.get("role"), [Role.STAFF]):
        return
    if str(current_user.get("sub")) == str(user_id):
        return

    logger.warning(
        "rbac_foreign_user_denied",
        user_id=current_user.get("sub"),
        target_user_id=str(user_id),
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Patients can only access their own credits",
    )


def require_roles(*required_roles: Role):
    """
    Decorator to require specific roles for endpoint access.

    Usage:
        @require_roles(Role.ADMIN)
        async def expire_credits(...):
            ...

    Args:
        required_roles: One or more roles that can access this endpoint

    Raises:
        HTTPException: 403 if user doesn't have required role
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # Extract current_user from kwargs (injected by get_current_user dependency)
            current_user = kwargs.get("current_user")

            if not current_user:
                logger.error("rbac_missing_current_user", endpoint=func.__name__)
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required",
                )

            user_role = current_user.get("role")

            if not check_role_hierarchy(user_role, list(required_roles)):
                logger.warning(
                    "rbac_permission_denied",
                    user_id=current_user.get("sub"),
                    user_role=user_role,
                    required_roles=[r.value for r in required_roles],
                    endpoint=func.__name__,
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions. Required roles: {', '.join(r.value for r in required_roles)}",
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
