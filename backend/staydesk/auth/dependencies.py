"""FastAPI authentication dependencies for route protection."""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from staydesk.auth.jwt import decode_token
from staydesk.domain.enums import Role
from staydesk.domain.records import Actor

_bearer_scheme = HTTPBearer()

# SYSTEM is reserved for in-process jobs and is never accepted from a token
_TOKEN_ROLES = frozenset({Role.ADMIN, Role.AGENT, Role.CLIENT})


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> Actor:
    """Verify the Bearer token and turn its claims into an :class:`Actor`.

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong type,
            or its ``sub``/``role`` claims are missing or malformed.
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

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
        role = Role(payload.get("role"))
    except ValueError:
        raise credentials_exception from None
    if role not in _TOKEN_ROLES:
        raise credentials_exception

    return Actor(role=role, user_id=user_id)


def require_roles(*roles: Role) -> Callable[..., Awaitable[Actor]]:
    """Dependency factory: only let ``roles`` through, 403 for everyone else."""
    allowed = frozenset(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role {actor.role.value} is not allowed here",
            )
        return actor

    return dependency
