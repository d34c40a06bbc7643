"""JWT access token verification (and issuing, for tools and tests).

Tokens carry the caller's id in ``sub`` and their role in ``role``. Login and
refresh belong to the session framework in front of this service.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from staydesk.config import settings
from staydesk.domain.enums import Role


def create_access_token(user_id: str, role: Role, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    Args:
        user_id: The caller's UUID as a string.
        role: One of the human roles (ADMIN, AGENT, CLIENT).
        expires_delta: Custom expiration duration. Defaults to
            ``settings.jwt_access_token_expire_minutes`` minutes.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    payload = {"sub": user_id, "role": Role(role).value, "exp": expire, "iat": now, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
