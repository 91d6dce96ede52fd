"""
Ocean Stella - Authentication Database Models

SQLModel-based models for user accounts and refresh sessions.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- Refresh secrets stored as SHA-256 hashes only
- All timestamps are naive UTC

Derived fields (normalized email, timestamps) are computed by the
constructor/update functions at the bottom of this module, never by
database hooks.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    """
    Flat role labels.

    The first account ever created is SUPERADMIN; everyone after that
    starts at a baseline role.
    """
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class UserStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class User(SQLModel, table=True):
    """
    User account.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier (unique, lowercase)
        password_hash: bcrypt hash; None for federation-only accounts
        email_verified: Whether the address has been proven
        email_otp_*: Pending verification challenge (hashed code, expiry,
            last send time, attempt counter)
        role: Flat role label
        status: "active" or "disabled"; disabled users get no new sessions
        avatar / avatar_public_id: Image URL and media-host asset id
        provider / provider_id: Federated identity (e.g. "google", uid)
    """
    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique user identifier"
    )
    name: str = Field(
        sa_column=Column(String(120), nullable=False),
        description="Display name"
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
        description="User email address (login identifier)"
    )
    password_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
        description="bcrypt password hash"
    )
    email_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )

    email_otp_hash: Optional[str] = Field(
        default=None, sa_column=Column(String(64), nullable=True)
    )
    email_otp_expires_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime, nullable=True)
    )
    email_otp_last_sent_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime, nullable=True)
    )
    email_otp_attempts: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )

    role: str = Field(
        default=Role.VIEWER.value,
        sa_column=Column(String(32), nullable=False, default=Role.VIEWER.value),
    )
    status: str = Field(
        default=UserStatus.ACTIVE.value,
        sa_column=Column(String(16), nullable=False, default=UserStatus.ACTIVE.value),
    )

    avatar: Optional[str] = Field(
        default=None, sa_column=Column(String(1024), nullable=True)
    )
    avatar_public_id: Optional[str] = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )

    provider: Optional[str] = Field(
        default=None, sa_column=Column(String(32), nullable=True)
    )
    provider_id: Optional[str] = Field(
        default=None, sa_column=Column(String(128), nullable=True)
    )

    last_login_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime, nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False),
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def has_pending_otp(self) -> bool:
        return bool(self.email_otp_hash and self.email_otp_expires_at)


class AuthSession(SQLModel, table=True):
    """
    Server-side refresh session.

    One row per signed-in browser/device. Only the SHA-256 hash of the
    refresh secret is stored, so reading the table alone cannot
    impersonate a user.

    Attributes:
        id: Unique session identifier
        user_id: Owning user
        token_hash: SHA-256 hex of the refresh secret
        expires_at: Fixed at creation; never extended
        revoked_at: Set on signout; revoked sessions are never usable
        ip_address / user_agent: Captured at creation for audit
    """
    __tablename__ = "auth_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "token_hash", name="uq_auth_sessions_user_token"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique session identifier"
    )
    user_id: UUID = Field(
        foreign_key="users.id",
        nullable=False,
        index=True,
        description="Reference to user"
    )
    token_hash: str = Field(
        sa_column=Column(String(64), nullable=False, index=True),
        description="SHA-256 hash of refresh secret"
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime, nullable=False),
        description="Session expiration timestamp"
    )
    revoked_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    ip_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(45), nullable=True),
        description="Client IP address"
    )
    user_agent: Optional[str] = Field(
        default=None,
        sa_column=Column(String(512), nullable=True),
        description="Client user-agent string"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


# =============================================================================
# ENTITY CONSTRUCTORS / UPDATERS
# =============================================================================

def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def new_user(
    name: str,
    email: str,
    role: str,
    password_hash: Optional[str] = None,
    email_verified: bool = False,
    status: str = UserStatus.ACTIVE.value,
    provider: Optional[str] = None,
    provider_id: Optional[str] = None,
    avatar: Optional[str] = None,
    avatar_public_id: Optional[str] = None,
) -> User:
    """Build a User with derived fields filled in."""
    now = utcnow()
    return User(
        name=(name or "").strip(),
        email=normalize_email(email),
        password_hash=password_hash,
        email_verified=email_verified,
        role=role,
        status=status,
        provider=provider,
        provider_id=provider_id,
        avatar=avatar,
        avatar_public_id=avatar_public_id,
        created_at=now,
        updated_at=now,
    )


def new_auth_session(
    user_id: UUID,
    token_hash: str,
    expires_at: datetime,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthSession:
    return AuthSession(
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        ip_address=(ip_address or None) and ip_address[:45],
        user_agent=(user_agent or None) and user_agent[:512],
        created_at=utcnow(),
    )


def touch(user: User) -> User:
    """Refresh derived fields before a write."""
    user.email = normalize_email(user.email)
    user.updated_at = utcnow()
    return user
