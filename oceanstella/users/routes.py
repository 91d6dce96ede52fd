"""
Ocean Stella - User API Routes

Account endpoints that sit next to auth:
- PATCH  /users/me              - Update own name/email
- PATCH  /users/me/avatar       - Replace own avatar reference

Admin endpoints (superadmin and admin roles):
- GET    /users/admin           - Paginated user list
- POST   /users/admin           - Create a user
- PUT    /users/admin/{id}      - Update a user
- DELETE /users/admin/{id}      - Delete a user and their sessions
- POST   /users/admin/{id}/revoke-sessions - Force re-login
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field, validator
from sqlmodel import Session as DBSession

from oceanstella.auth import sessions as session_service
from oceanstella.auth import users as user_store
from oceanstella.auth.database import DuplicateKeyError
from oceanstella.auth.models import Role, User, UserStatus, new_user
from oceanstella.auth.password import hash_password
from oceanstella.auth.pipeline import RequestContext, admin_only, authenticated
from oceanstella.auth.routes import get_db
from oceanstella.auth.schemas import (
    ErrorResponse,
    OkResponse,
    UserEnvelope,
    UserResponse,
    valid_email,
    valid_password,
)
from oceanstella.config import settings
from oceanstella.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


# =============================================================================
# Request/Response Models
# =============================================================================

class ProfileUpdateRequest(BaseModel):
    """Request body for PATCH /users/me."""
    name: Optional[str] = None
    email: Optional[str] = None

    @validator("name")
    def name_length(cls, v):
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @validator("email")
    def email_format(cls, v):
        return valid_email(v) if v is not None else v


class AvatarRef(BaseModel):
    """Image reference returned by the media host."""
    url: str = Field(..., min_length=1, max_length=1024)
    publicId: Optional[str] = Field(default=None, max_length=255)


class AdminCreateRequest(BaseModel):
    """Request body for POST /users/admin."""
    name: str = Field(..., min_length=2, max_length=120)
    email: str
    password: str
    role: Role = Role.VIEWER
    status: UserStatus = UserStatus.ACTIVE
    avatar: Optional[AvatarRef] = None

    @validator("email")
    def email_format(cls, v):
        return valid_email(v)

    @validator("password")
    def password_length(cls, v):
        return valid_password(v)


class AdminUpdateRequest(BaseModel):
    """Request body for PUT /users/admin/{id}. Omitted fields are unchanged."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None
    status: Optional[UserStatus] = None
    emailVerified: Optional[bool] = None
    avatar: Optional[AvatarRef] = None
    removeAvatar: bool = False

    @validator("email")
    def email_format(cls, v):
        return valid_email(v) if v is not None else v

    @validator("password")
    def password_length(cls, v):
        return valid_password(v) if v is not None else v


class UserListResponse(BaseModel):
    """Paginated user list."""
    ok: bool = True
    items: List[UserResponse]
    total: int
    page: int
    pages: int


# =============================================================================
# Helpers
# =============================================================================

def _check_password(password: str) -> None:
    if len(password or "") < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
            code="WEAK_PASSWORD",
        )


async def _load_user(db: DBSession, user_id: UUID) -> User:
    user = await user_store.find_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


async def _save(db: DBSession, user: User) -> User:
    try:
        return await user_store.save_user(db, user)
    except DuplicateKeyError:
        raise ConflictError("Email already in use", code="EMAIL_TAKEN")


# =============================================================================
# Own Profile
# =============================================================================

@router.patch(
    "/me",
    response_model=UserEnvelope,
    responses={409: {"model": ErrorResponse}},
    summary="Update own profile",
)
async def update_me(
    body: ProfileUpdateRequest,
    ctx: RequestContext = Depends(authenticated),
    db: DBSession = Depends(get_db),
):
    user = await _load_user(db, ctx.user.id)

    if body.name is not None:
        user.name = body.name

    if body.email is not None and body.email != user.email:
        if await user_store.find_by_email(db, body.email):
            raise ConflictError("Email already in use", code="EMAIL_TAKEN")
        user.email = body.email

    user = await _save(db, user)
    return UserEnvelope(user=UserResponse.from_user(user))


@router.patch(
    "/me/avatar",
    response_model=UserEnvelope,
    summary="Replace own avatar",
)
async def update_my_avatar(
    body: AvatarRef,
    ctx: RequestContext = Depends(authenticated),
    db: DBSession = Depends(get_db),
):
    """
    Store the uploaded image's reference.

    The upload itself happens client-side against the media host; only
    {url, publicId} reach us.
    """
    user = await _load_user(db, ctx.user.id)
    user.avatar = body.url
    user.avatar_public_id = body.publicId

    user = await _save(db, user)
    return UserEnvelope(user=UserResponse.from_user(user))


# =============================================================================
# Admin
# =============================================================================

@router.get("/admin", response_model=UserListResponse, summary="List users")
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    q: str = Query("", description="Search name or email"),
    status_filter: str = Query("", alias="status", description="Filter by status"),
    role: str = Query("", description="Filter by role"),
    admin: RequestContext = Depends(admin_only),
    db: DBSession = Depends(get_db),
):
    items, total = await user_store.list_users(
        db, q=q.strip(), status=status_filter, role=role, page=page, limit=limit
    )
    pages = max(1, -(-total // limit))
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in items],
        total=total,
        page=page,
        pages=pages,
    )


@router.post(
    "/admin",
    response_model=UserEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create user",
)
async def create_user(
    body: AdminCreateRequest,
    admin: RequestContext = Depends(admin_only),
    db: DBSession = Depends(get_db),
):
    """
    Create an account directly.

    Admin-created accounts are treated as verified: the admin vouches for
    the address.
    """
    _check_password(body.password)

    if await user_store.find_by_email(db, body.email):
        raise ConflictError("Email already in use", code="EMAIL_TAKEN")

    user = new_user(
        name=body.name,
        email=body.email,
        role=body.role.value,
        status=body.status.value,
        password_hash=hash_password(body.password),
        email_verified=True,
        avatar=body.avatar.url if body.avatar else None,
        avatar_public_id=body.avatar.publicId if body.avatar else None,
    )
    try:
        user = await user_store.create_user(db, user)
    except DuplicateKeyError:
        raise ConflictError("Email already in use", code="EMAIL_TAKEN")

    logger.info("User created by admin user_id=%s admin_id=%s", user.id, admin.user.id)
    return UserEnvelope(user=UserResponse.from_user(user))


@router.put(
    "/admin/{target_user_id}",
    response_model=UserEnvelope,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse},
               409: {"model": ErrorResponse}},
    summary="Update user",
)
async def update_user(
    body: AdminUpdateRequest,
    target_user_id: UUID = Path(..., description="User ID to update"),
    admin: RequestContext = Depends(admin_only),
    db: DBSession = Depends(get_db),
):
    """
    Update any account field.

    Disabling an account also revokes its refresh sessions. Admins cannot
    disable their own account.
    """
    user = await _load_user(db, target_user_id)

    if admin.user.id == user.id and body.status == UserStatus.DISABLED:
        raise ValidationError("Cannot disable your own account", code="SELF_DISABLE")

    if body.name is not None:
        user.name = body.name.strip()
    if body.email is not None:
        user.email = body.email
    if body.password is not None:
        _check_password(body.password)
        user.password_hash = hash_password(body.password)
    if body.role is not None:
        user.role = body.role.value
    if body.emailVerified is not None:
        user.email_verified = body.emailVerified

    if body.removeAvatar:
        user.avatar = None
        user.avatar_public_id = None
    elif body.avatar is not None:
        user.avatar = body.avatar.url
        user.avatar_public_id = body.avatar.publicId

    disabling = body.status == UserStatus.DISABLED and user.is_active
    if body.status is not None:
        user.status = body.status.value

    user = await _save(db, user)

    if disabling:
        count = await session_service.revoke_all_user_sessions(db, user.id)
        logger.info("User disabled user_id=%s sessions_revoked=%d", user.id, count)

    return UserEnvelope(user=UserResponse.from_user(user))


@router.delete(
    "/admin/{target_user_id}",
    response_model=OkResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Delete user",
)
async def delete_user(
    target_user_id: UUID = Path(..., description="User ID to delete"),
    admin: RequestContext = Depends(admin_only),
    db: DBSession = Depends(get_db),
):
    user = await _load_user(db, target_user_id)

    if admin.user.id == user.id:
        raise ValidationError("Cannot delete your own account", code="SELF_DELETE")

    await session_service.delete_user_sessions(db, user.id)
    await user_store.delete_user(db, user)

    logger.info("User deleted user_id=%s admin_id=%s", target_user_id, admin.user.id)
    return OkResponse()


@router.post(
    "/admin/{target_user_id}/revoke-sessions",
    response_model=OkResponse,
    summary="Revoke user sessions",
)
async def revoke_user_sessions(
    target_user_id: UUID = Path(..., description="User ID to revoke sessions for"),
    admin: RequestContext = Depends(admin_only),
    db: DBSession = Depends(get_db),
):
    """Revoke every open session of a user. Forces re-login."""
    user = await _load_user(db, target_user_id)
    count = await session_service.revoke_all_user_sessions(db, user.id)
    logger.info("Sessions revoked user_id=%s count=%d admin_id=%s", user.id, count, admin.user.id)
    return OkResponse()
