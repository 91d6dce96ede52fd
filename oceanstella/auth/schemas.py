"""
Ocean Stella - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models. JSON field names follow the
frontend's camelCase contract.
"""

import re
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from oceanstella.auth.models import AuthSession, User
from oceanstella.auth.password import fits_bcrypt


EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def valid_email(v: str) -> str:
    v = (v or "").strip()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


def valid_password(v: str) -> str:
    # The limit is in bytes, so multibyte characters count more than once
    if not fits_bcrypt(v):
        raise ValueError("Password must be at most 72 bytes")
    return v


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    name: str = Field(..., min_length=2, max_length=120)
    email: str
    password: str

    @validator("name")
    def name_trimmed(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @validator("email")
    def email_format(cls, v):
        return valid_email(v)

    @validator("password")
    def password_length(cls, v):
        return valid_password(v)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""
    email: str
    code: str

    @validator("email")
    def email_format(cls, v):
        return valid_email(v)

    @validator("code")
    def six_digits(cls, v):
        v = v.strip()
        if not re.fullmatch(r"\d{6}", v):
            raise ValueError("Code must be 6 digits")
        return v


class ResendOtpRequest(BaseModel):
    """Request body for POST /auth/resend-email-otp."""
    email: str

    @validator("email")
    def email_format(cls, v):
        return valid_email(v)


class SigninRequest(BaseModel):
    """Request body for POST /auth/signin."""
    email: str
    password: str = Field(..., min_length=1, max_length=72)

    @validator("email")
    def email_format(cls, v):
        return valid_email(v)


class GoogleSigninRequest(BaseModel):
    """Request body for POST /auth/google."""
    id_token: str = Field(default="", alias="idToken")


class SignoutRequest(BaseModel):
    """Request body for POST /auth/signout (optional)."""
    all_sessions: bool = Field(
        default=False,
        alias="allSessions",
        description="Revoke every session of this account (sign out everywhere)"
    )


class UserResponse(BaseModel):
    """Public view of an account."""
    id: UUID
    name: str
    email: str
    role: str
    status: str
    avatar: Optional[str] = None
    avatarPublicId: Optional[str] = None
    emailVerified: bool
    lastLoginAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            status=user.status,
            avatar=user.avatar,
            avatarPublicId=user.avatar_public_id,
            emailVerified=bool(user.email_verified),
            lastLoginAt=user.last_login_at,
            createdAt=user.created_at,
        )


class OkResponse(BaseModel):
    ok: bool = True


class UserEnvelope(BaseModel):
    """Response body carrying one user."""
    ok: bool = True
    user: UserResponse


class SignupResponse(BaseModel):
    ok: bool = True
    needsVerification: bool = True
    email: str


class VerifyEmailResponse(BaseModel):
    ok: bool = True
    user: Optional[UserResponse] = None
    alreadyVerified: Optional[bool] = None


class SessionInfo(BaseModel):
    """Session information for user display."""
    id: UUID
    createdAt: datetime
    expiresAt: datetime
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None
    current: bool = False

    @classmethod
    def from_session(cls, session: AuthSession, current: bool = False) -> "SessionInfo":
        return cls(
            id=session.id,
            createdAt=session.created_at,
            expiresAt=session.expires_at,
            ipAddress=session.ip_address,
            userAgent=session.user_agent,
            current=current,
        )


class ActiveSessionsResponse(BaseModel):
    """Response body for GET /auth/sessions."""
    ok: bool = True
    sessions: List[SessionInfo]
    total: int


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    ok: bool = False
    error: str
    code: Optional[str] = None
