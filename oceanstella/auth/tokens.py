"""
Ocean Stella - Token Management

Two credentials back every browser session:

- Access token: short-lived HS256 JWT carrying sub (user id), role and
  email. Verified without any store lookup.
- Refresh secret: 512 random bits as hex. The plaintext travels only in the
  os_rt cookie; the database keeps its SHA-256 hash.

Security:
- Short-lived access tokens (15 minutes default) bound the replay window
- Refresh sessions are server-side and revocable

The signing key comes from the process-wide settings because the gateway
middleware verifies cookies with it. AuthService passes its own access TTL.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, Field

from oceanstella.auth.models import User, utcnow
from oceanstella.config import settings


REFRESH_SECRET_BYTES = 64


class TokenPayload(BaseModel):
    """
    Access token payload structure.

    Attributes:
        sub: Subject (user ID)
        role: User role label
        email: User email
        exp: Expiration timestamp
        iat: Issued-at timestamp
    """
    sub: str = Field(..., description="User ID")
    role: str = Field(..., description="User role")
    email: str = Field(..., description="User email")
    exp: datetime = Field(..., description="Expiration time")
    iat: datetime = Field(..., description="Issued at time")


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""
    pass


class TokenExpiredError(InvalidTokenError):
    """Raised when a well-formed JWT is past its exp claim."""
    pass


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a new access token for a user.

    Args:
        user: Account the token speaks for
        expires_delta: Optional custom lifetime (defaults to ACCESS_TOKEN_TTL)

    Returns:
        Encoded JWT string
    """
    now = utcnow()
    expire = now + (expires_delta if expires_delta is not None else settings.access_ttl)

    payload = {
        "sub": str(user.id),
        "role": user.role,
        "email": user.email,
        "exp": expire,
        "iat": now,
    }

    return jwt.encode(
        payload,
        settings.JWT_ACCESS_SECRET,
        algorithm=settings.JWT_ALGORITHM
    )


def verify_access_token(token: str) -> TokenPayload:
    """
    Verify and decode an access token.

    Raises:
        TokenExpiredError: Signature valid but token expired
        InvalidTokenError: Token is malformed, tampered or otherwise invalid
    """
    if not token:
        raise InvalidTokenError("Token validation failed: empty token")
    try:
        payload = jwt.decode(
            token,
            settings.JWT_ACCESS_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return TokenPayload(**payload)
    except ExpiredSignatureError as e:
        raise TokenExpiredError(f"Token expired: {e}")
    except (JWTError, ValueError) as e:
        raise InvalidTokenError(f"Token validation failed: {e}")


def hash_refresh_secret(secret: str) -> str:
    """SHA-256 hex digest used as the session lookup key."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def new_refresh_secret() -> Tuple[str, str]:
    """
    Create a refresh secret.

    Returns:
        Tuple of (plaintext for the cookie, hash for the database)
    """
    secret = secrets.token_hex(REFRESH_SECRET_BYTES)
    return secret, hash_refresh_secret(secret)
