"""
Authentication dependencies for FastAPI routes.

Routes depend on ``require_user`` or ``require_system_admin``; admin routes
then turn the user dict into a ``Caller`` for the match membership editor.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from cove.services import auth_service, user_service
from cove.services.match_membership_service import Caller
from cove.database.db import get_db_session

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Resolve the bearer token to the calling user.

    Raises:
        HTTPException: 401 if the token does not verify, carries no user_id,
            or names a user that no longer exists
    """
    claims = auth_service.verify_token(credentials.credentials)
    if claims is None:
        raise _unauthorized("Invalid authentication token")

    user_id = claims.get("user_id")
    if user_id is None:
        raise _unauthorized("Invalid token payload")

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


async def require_system_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require a superadmin; matching corrections are never open to regular users."""
    if not user.get("is_superadmin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def caller_from_user(user: dict) -> Caller:
    return Caller(id=user["id"], is_admin=bool(user.get("is_superadmin")))
