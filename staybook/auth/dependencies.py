"""FastAPI authentication dependencies for route protection."""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.auth.jwt import decode_token
from staybook.auth.permissions import Capability, has_capability
from staybook.database import get_db
from staybook.errors import PermissionDenied
from staybook.models.user import User

# Strict bearer: rejects the request automatically if no token provided
_bearer_scheme = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is invalid, expired, wrong type, or user not found.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception from None

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub: str | None = payload.get("sub")
    if sub is None:
        raise credentials_exception

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise credentials_exception from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception

    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive or banned.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


def require_capability(capability: Capability) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits only users whose role grants ``capability``.

    Usage::

        @router.get("/payouts")
        async def list_payouts(user: User = Depends(require_capability(Capability.VIEW_PAYOUTS))):
            ...
    """

    async def _check(user: User = Depends(get_current_active_user)) -> User:
        if not has_capability(user.role, capability):
            raise PermissionDenied(f"Role {user.role.value} lacks the {capability.value} capability")
        return user

    return _check
