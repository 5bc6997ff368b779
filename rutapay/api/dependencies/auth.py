"""
FastAPI dependencies for authenticated requests

Usage:
    @router.put("/{recharge_id}/confirm")
    async def confirm(
        recharge_id: int,
        admin: User = Depends(require_roles(UserRole.ADMIN)),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.auth import verify_token
from rutapay.core.exceptions import ForbiddenError, UnauthorizedError
from rutapay.core.logging import get_logger
from rutapay.db.database import get_db
from rutapay.db.models.user import User, UserRole

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to an active user.

    The role is taken from the database row, not from the token, so a role
    change or deactivation applies to tokens already issued.
    """
    if credentials is None:
        raise UnauthorizedError()

    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise UnauthorizedError("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        logger.warning(
            "Token for missing or inactive user",
            extra_data={"user_id": token_data.user_id, "user_found": user is not None},
        )
        raise UnauthorizedError("User is not active")

    # picked up by RequestLoggingMiddleware
    request.state.actor_id = user.id
    request.state.actor_role = user.role.value
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: 403 unless the current user has one of ``roles``"""
    allowed = set(roles)

    async def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.warning(
                "Access denied by role",
                extra_data={
                    "user_id": user.id,
                    "role": user.role.value,
                    "allowed": sorted(r.value for r in allowed),
                },
            )
            raise ForbiddenError(
                "Insufficient permissions",
                details={"required_roles": sorted(r.value for r in allowed)},
            )
        return user

    return _check_role
