"""
Ocean Stella - Authentication Routes

API endpoints for authentication:
- POST   /auth/signup            - Register (sends verification code)
- POST   /auth/verify-email      - Confirm code, start session
- POST   /auth/resend-email-otp  - Re-send verification code
- POST   /auth/signin            - Password signin
- POST   /auth/google            - Google (Firebase) signin
- POST   /auth/refresh           - New access token from refresh cookie
- GET    /auth/me                - Current user (silently refreshes)
- POST   /auth/signout           - Revoke session, clear cookies
- GET    /auth/sessions          - List own active sessions
- DELETE /auth/sessions/{id}     - Revoke one session

Credentials travel only in the os_at / os_rt cookies.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel import Session as DBSession

from oceanstella.auth import sessions as session_service
from oceanstella.auth.cookies import CookieTransport
from oceanstella.auth.models import AuthSession, Role
from oceanstella.auth.pipeline import RequestContext, authenticated
from oceanstella.auth.schemas import (
    ActiveSessionsResponse,
    ErrorResponse,
    GoogleSigninRequest,
    OkResponse,
    ResendOtpRequest,
    SessionInfo,
    SigninRequest,
    SignoutRequest,
    SignupRequest,
    SignupResponse,
    UserEnvelope,
    UserResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from oceanstella.auth.service import AuthService, RequestMeta, SessionGrant
from oceanstella.auth.tokens import hash_refresh_secret
from oceanstella.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def get_auth_service(request: Request) -> AuthService:
    """Get the lifecycle manager from app state."""
    return request.app.state.auth_service


def get_cookies(request: Request) -> CookieTransport:
    return request.app.state.cookies


def get_db(request: Request):
    """Database session from the app's Database handle."""
    yield from request.app.state.database.session_scope()


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def get_user_agent(request: Request) -> str:
    """Extract user agent from request."""
    return request.headers.get("User-Agent", "")[:512]


def request_meta(request: Request) -> RequestMeta:
    return RequestMeta(ip_address=get_client_ip(request), user_agent=get_user_agent(request))


def _issue(response: Response, cookies: CookieTransport, grant: SessionGrant) -> None:
    cookies.set_session_cookies(
        response,
        grant.access_token,
        grant.refresh_token,
        refresh_max_age=grant.refresh_max_age,
    )


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register and send a verification code",
)
async def signup(
    body: SignupRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Create an unverified account and email a 6-digit code.

    No session is created until the code is verified.
    """
    user = await service.signup(body.name, body.email, body.password)
    return SignupResponse(email=user.email)


@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Verify email code and sign in",
)
async def verify_email(
    request: Request,
    response: Response,
    body: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    """
    Verify the emailed code.

    Success is the signup's login: a session is created and both cookies
    are set. An already-verified address returns alreadyVerified without
    a session.
    """
    result = await service.verify_email(body.email, body.code, request_meta(request))
    if result.already_verified:
        return VerifyEmailResponse(alreadyVerified=True)

    _issue(response, cookies, result.grant)
    return VerifyEmailResponse(user=UserResponse.from_user(result.user))


@router.post(
    "/resend-email-otp",
    response_model=VerifyEmailResponse,
    response_model_exclude_none=True,
    responses={429: {"model": ErrorResponse}},
    summary="Send a new verification code",
)
async def resend_email_otp(
    body: ResendOtpRequest,
    service: AuthService = Depends(get_auth_service),
):
    sent = await service.resend_otp(body.email)
    if not sent:
        return VerifyEmailResponse(alreadyVerified=True)
    return VerifyEmailResponse()


@router.post(
    "/signin",
    response_model=UserEnvelope,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Sign in with email and password",
)
async def signin(
    request: Request,
    response: Response,
    body: SigninRequest,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    """
    Authenticate with email and password.

    On success:
    1. Validates password against bcrypt hash
    2. Creates server-side refresh session
    3. Sets os_at and os_rt cookies
    """
    grant = await service.signin(body.email, body.password, request_meta(request))
    _issue(response, cookies, grant)
    return UserEnvelope(user=UserResponse.from_user(grant.user))


@router.post(
    "/google",
    response_model=UserEnvelope,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Sign in with a Google (Firebase) ID token",
)
async def google_signin(
    request: Request,
    response: Response,
    body: GoogleSigninRequest,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    grant = await service.federated_signin(body.id_token, request_meta(request))
    _issue(response, cookies, grant)
    return UserEnvelope(user=UserResponse.from_user(grant.user))


@router.post(
    "/refresh",
    response_model=OkResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Issue a new access token",
)
async def refresh(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    """
    Renew the access cookie from the refresh cookie.

    The refresh cookie is re-sent with the session's remaining lifetime;
    the session itself is never extended.
    """
    grant = await service.refresh(cookies.read_refresh(request))
    _issue(response, cookies, grant)
    return OkResponse()


@router.get(
    "/me",
    response_model=UserEnvelope,
    responses={401: {"model": ErrorResponse}},
    summary="Get current user (auto-refresh)",
)
async def get_me(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    """
    Identify the caller.

    Tries the access cookie first; when it is missing or expired, a valid
    refresh cookie transparently re-issues it.
    """
    result = await service.identity_probe(
        cookies.read_access(request), cookies.read_refresh(request)
    )
    if result.renewed is not None:
        _issue(response, cookies, result.renewed)
    return UserEnvelope(user=UserResponse.from_user(result.user))


@router.post(
    "/signout",
    response_model=OkResponse,
    summary="Revoke session and clear cookies",
)
async def signout(
    request: Request,
    response: Response,
    body: Optional[SignoutRequest] = None,
    service: AuthService = Depends(get_auth_service),
    cookies: CookieTransport = Depends(get_cookies),
):
    """
    Sign out. Always succeeds and always clears both cookies.

    Args:
        body: Optional. Set allSessions=true to sign out everywhere.
    """
    all_sessions = bool(body and body.all_sessions)
    await service.signout(cookies.read_refresh(request), all_sessions=all_sessions)
    cookies.clear(response)
    return OkResponse()


@router.get(
    "/sessions",
    response_model=ActiveSessionsResponse,
    summary="List active sessions",
)
async def list_sessions(
    request: Request,
    ctx: RequestContext = Depends(authenticated),
    db: DBSession = Depends(get_db),
    cookies: CookieTransport = Depends(get_cookies),
):
    """List the caller's signed-in devices; the current one is flagged."""
    refresh_token = cookies.read_refresh(request)
    current_hash = hash_refresh_secret(refresh_token) if refresh_token else None

    active = await session_service.get_active_sessions(db, ctx.user.id)
    items = [
        SessionInfo.from_session(s, current=(s.token_hash == current_hash))
        for s in active
    ]
    return ActiveSessionsResponse(sessions=items, total=len(items))


@router.delete(
    "/sessions/{target_session_id}",
    response_model=OkResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Revoke a specific session",
)
async def revoke_session(
    target_session_id: UUID,
    ctx: RequestContext = Depends(authenticated),
    db: DBSession = Depends(get_db),
):
    """
    Revoke a specific session.

    Users can only revoke their own sessions.
    Admins can revoke any session.
    """
    session = db.get(AuthSession, target_session_id)
    if not session:
        raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")

    is_admin = ctx.user.role in (Role.SUPERADMIN.value, Role.ADMIN.value)
    if session.user_id != ctx.user.id and not is_admin:
        raise AuthorizationError("Cannot revoke another user's session", code="FORBIDDEN")

    await session_service.revoke_session(db, target_session_id)
    logger.info("Session revoked session_id=%s by user_id=%s", target_session_id, ctx.user.id)
    return OkResponse()
