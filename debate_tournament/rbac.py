"""
debate_tournament/rbac.py
Acting-user resolution for routes.

Authentication is handled upstream; requests carry the acting user's id in
the X-User-Id header and it is resolved against the users table here.
"""
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.database import get_db
from debate_tournament.errors import UnauthorizedError, PermissionDeniedError, ErrorCode
from debate_tournament.orm.user import User


async def get_current_user(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Returns 401 if the header is missing or names no user."""
    if x_user_id is None:
        raise UnauthorizedError()

    result = await db.execute(select(User).where(User.id == x_user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise UnauthorizedError(f"Unknown user '{x_user_id}'", code=ErrorCode.AUTH_INVALID)
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise PermissionDeniedError("Administrator access required")
    return current_user
