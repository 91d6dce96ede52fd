"""
Ocean Stella - Session Lifecycle

AuthService orchestrates every multi-step auth transition:

- signup            -> unverified user + emailed code (no session yet)
- verify_email      -> verified user + new session (the signup login)
- resend_otp        -> fresh code, subject to a 60s cooldown
- signin            -> password check + new session
- federated_signin  -> Google/Firebase identity upsert + new session
- refresh           -> new access token for a live refresh session
- identity_probe    -> "who am I", renewing silently through refresh
- signout           -> best-effort revocation

The service never touches HTTP. It returns grants; routes turn grants into
cookies only after the session row has been committed.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from oceanstella.auth import otp, sessions, users
from oceanstella.auth.cookies import CookieTransport
from oceanstella.auth.database import Database, DuplicateKeyError
from oceanstella.auth.federation import ExternalIdentity
from oceanstella.auth.models import Role, User, new_user, normalize_email, utcnow
from oceanstella.auth.password import hash_password, needs_rehash, verify_password
from oceanstella.auth.tokens import (
    InvalidTokenError,
    create_access_token,
    hash_refresh_secret,
    new_refresh_secret,
    verify_access_token,
)
from oceanstella.config import Settings
from oceanstella.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from oceanstella.logging_config import redact_email

logger = logging.getLogger(__name__)


@dataclass
class RequestMeta:
    """Client details captured on each new session for audit."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class SessionGrant:
    """
    Credentials to hand to the client.

    refresh_max_age is the cookie lifetime in seconds; for renewals it is
    the session's remaining life.
    """
    user: User
    access_token: str
    refresh_token: str
    refresh_max_age: int


@dataclass
class VerifyResult:
    user: User
    grant: Optional[SessionGrant] = None
    already_verified: bool = False


@dataclass
class ProbeResult:
    user: User
    renewed: Optional[SessionGrant] = None


class AuthService:
    """
    Session lifecycle manager.

    Collaborators and account policy come from the injected settings; only
    the JWT signing key is process-wide.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        mailer,
        federation,
        cookies: CookieTransport,
    ):
        self.settings = settings
        self.database = database
        self.mailer = mailer
        self.federation = federation
        self.cookies = cookies

    # -------------------------------------------------------------------------
    # Signup + email verification
    # -------------------------------------------------------------------------

    async def signup(self, name: str, email: str, password: str) -> User:
        """
        Register a local account and send its verification code.

        Raises:
            AuthorizationError: Public signup is disabled
            ValidationError: Password below the length floor
            ConflictError: Email already registered
            DependencyError: Code could not be sent (user is rolled back)
        """
        if not self.settings.ALLOW_PUBLIC_SIGNUP:
            raise AuthorizationError("Signups disabled", code="SIGNUP_DISABLED")

        if len(password or "") < self.settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters",
                code="WEAK_PASSWORD",
            )

        email = normalize_email(email)

        with self.database.session() as db:
            if await users.find_by_email(db, email):
                raise ConflictError("Email already in use", code="EMAIL_TAKEN")

            role = await users.bootstrap_role(db, Role.VIEWER)
            user = new_user(
                name=name,
                email=email,
                role=role,
                password_hash=hash_password(password, self.settings.BCRYPT_WORK_FACTOR),
                email_verified=False,
            )
            code = otp.issue_challenge(user)

            try:
                user = await users.create_user(db, user)
            except DuplicateKeyError:
                # Lost a race with a concurrent signup for the same address
                raise ConflictError("Email already in use", code="EMAIL_TAKEN")

            try:
                await self.mailer.send_otp(user.email, code)
            except DependencyError:
                logger.error("OTP dispatch failed, rolling back signup user_id=%s", user.id)
                await users.delete_user(db, user)
                raise

            logger.info("Signup pending verification user_id=%s role=%s", user.id, user.role)
            return user

    async def verify_email(
        self, email: str, code: str, meta: Optional[RequestMeta] = None
    ) -> VerifyResult:
        """
        Check a verification code; success signs the user in.

        Raises:
            NotFoundError: No such account
            ValidationError: NOT_REQUESTED, OTP_EXPIRED or INVALID_CODE
            RateLimitError: TOO_MANY_ATTEMPTS
        """
        with self.database.session() as db:
            user = await users.find_by_email(db, email)
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            if user.email_verified:
                return VerifyResult(user=user, already_verified=True)

            if not user.is_active:
                raise AuthorizationError("Account disabled", code="ACCOUNT_DISABLED")

            try:
                otp.verify_challenge(user, code)
            finally:
                # Attempt counter must persist whatever the outcome
                await users.save_user(db, user)

            grant = await self._start_session(db, user, meta)
            logger.info("Email verified user_id=%s", user.id)
            return VerifyResult(user=grant.user, grant=grant)

    async def resend_otp(self, email: str) -> bool:
        """
        Send a fresh code.

        Returns:
            False if the address is already verified (nothing sent)

        Raises:
            NotFoundError: No such account
            RateLimitError: TOO_SOON
            DependencyError: Dispatch failed (previous challenge restored)
        """
        with self.database.session() as db:
            user = await users.find_by_email(db, email)
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            if user.email_verified:
                return False

            otp.ensure_resend_allowed(user)

            previous = otp.snapshot_challenge(user)
            code = otp.issue_challenge(user)
            await users.save_user(db, user)

            try:
                await self.mailer.send_otp(user.email, code)
            except DependencyError:
                otp.restore_challenge(user, previous)
                await users.save_user(db, user)
                raise

            logger.info("OTP resent user_id=%s", user.id)
            return True

    # -------------------------------------------------------------------------
    # Signin
    # -------------------------------------------------------------------------

    async def signin(
        self, email: str, password: str, meta: Optional[RequestMeta] = None
    ) -> SessionGrant:
        """
        Password signin.

        Missing account, wrong password, disabled account and
        federation-only account all produce the same "Invalid credentials".

        Raises:
            AuthenticationError: INVALID_CREDENTIALS
            AuthorizationError: EMAIL_NOT_VERIFIED
        """
        with self.database.session() as db:
            user = await users.find_by_email(db, email)

            reason = None
            if not user:
                reason = "user_not_found"
            elif not verify_password(password, user.password_hash):
                reason = "invalid_password"
            elif not user.is_active:
                reason = "account_disabled"

            if reason:
                logger.info("Signin failed for %s: %s", redact_email(email), reason)
                raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")

            if not user.email_verified:
                raise AuthorizationError(
                    "Please verify your email first",
                    code="EMAIL_NOT_VERIFIED",
                    extra={"needsVerification": True, "email": user.email},
                )

            # Upgrade hashes made with an older work factor
            if needs_rehash(user.password_hash, self.settings.BCRYPT_WORK_FACTOR):
                user.password_hash = hash_password(password, self.settings.BCRYPT_WORK_FACTOR)

            grant = await self._start_session(db, user, meta)
            logger.info("Signin success user_id=%s", user.id)
            return grant

    async def federated_signin(
        self, id_token: str, meta: Optional[RequestMeta] = None
    ) -> SessionGrant:
        """
        Google sign-in through a Firebase ID token.

        Creates the account on first sight, otherwise links the federated
        identity to the existing email in place.

        Raises:
            ValidationError: Missing token, or token without an email
            AuthenticationError: INVALID_EXTERNAL_TOKEN
            AuthorizationError: ACCOUNT_DISABLED
        """
        if not id_token:
            raise ValidationError("Missing idToken", code="MISSING_ID_TOKEN")

        identity = await self.federation.verify(id_token)
        if not identity.email:
            raise ValidationError("No email in Google account", code="NO_EMAIL_IN_EXTERNAL_TOKEN")

        email = normalize_email(identity.email)

        with self.database.session() as db:
            user = await users.find_by_email(db, email)

            if user is None:
                role = await users.bootstrap_role(db, Role.EDITOR)
                try:
                    user = await users.create_user(db, new_user(
                        name=identity.name or "Google User",
                        email=email,
                        role=role,
                        email_verified=True,
                        provider=identity.provider,
                        provider_id=identity.uid,
                        avatar=identity.picture,
                    ))
                    logger.info("Federated account created user_id=%s role=%s", user.id, role)
                except DuplicateKeyError:
                    user = await users.find_by_email(db, email)
                    if user is None:
                        raise DependencyError("Could not create account", code="STORAGE_FAILED")

            if self._link_identity(user, identity):
                await users.save_user(db, user)
                logger.info("Federated identity linked user_id=%s", user.id)

            if not user.is_active:
                raise AuthorizationError("Account disabled", code="ACCOUNT_DISABLED")

            return await self._start_session(db, user, meta)

    @staticmethod
    def _link_identity(user: User, identity: ExternalIdentity) -> bool:
        """Apply provider, avatar and verified flag; report whether anything changed."""
        changed = False
        if user.provider != identity.provider:
            user.provider = identity.provider
            changed = True
        if not user.provider_id and identity.uid:
            user.provider_id = identity.uid
            changed = True
        if identity.picture and user.avatar != identity.picture:
            user.avatar = identity.picture
            changed = True
        if not user.email_verified:
            user.email_verified = True
            changed = True
        if changed:
            # A provider-proven address supersedes any pending code
            otp.clear_challenge(user)
        return changed

    # -------------------------------------------------------------------------
    # Refresh / probe / signout
    # -------------------------------------------------------------------------

    async def refresh(self, refresh_token: Optional[str]) -> SessionGrant:
        """
        Issue a new access token from a refresh session.

        The refresh cookie is re-sent with the session's remaining life;
        the session's expiry is never moved.

        Raises:
            AuthenticationError: NO_REFRESH_TOKEN, SESSION_EXPIRED, USER_DISABLED
            AuthorizationError: EMAIL_NOT_VERIFIED (when REQUIRE_VERIFIED_EMAIL)
        """
        if not refresh_token:
            raise AuthenticationError("No refresh token", code="NO_REFRESH_TOKEN")

        with self.database.session() as db:
            return await self._renew(db, refresh_token)

    async def identity_probe(
        self, access_token: Optional[str], refresh_token: Optional[str]
    ) -> ProbeResult:
        """
        Resolve the caller, preferring the access token.

        A missing, expired or invalid access token falls back to the
        refresh session, which renews the access token in the same call.

        Raises:
            AuthenticationError: Neither credential is usable
            AuthorizationError: EMAIL_NOT_VERIFIED (when REQUIRE_VERIFIED_EMAIL)
        """
        if access_token:
            claims = None
            try:
                claims = verify_access_token(access_token)
            except InvalidTokenError as e:
                logger.debug("Access token rejected, trying refresh: %s", e)

            if claims is not None:
                with self.database.session() as db:
                    user = await users.find_by_id(db, claims.sub)
                if not user or not user.is_active:
                    raise AuthenticationError(
                        "Invalid user", code="INVALID_USER", clear_cookies=True
                    )
                self._require_verified(user)
                return ProbeResult(user=user)

        if not refresh_token:
            raise AuthenticationError("No session", code="UNAUTHENTICATED")

        with self.database.session() as db:
            grant = await self._renew(db, refresh_token)
        return ProbeResult(user=grant.user, renewed=grant)

    async def signout(self, refresh_token: Optional[str], all_sessions: bool = False) -> int:
        """
        Revoke the presented refresh session.

        Best-effort: an unknown token or a storage hiccup is logged and
        ignored so signout always succeeds for the caller.

        Returns:
            Number of sessions revoked
        """
        if not refresh_token:
            return 0

        token_hash = hash_refresh_secret(refresh_token)
        try:
            with self.database.session() as db:
                if all_sessions:
                    session = await sessions.find_active_by_hash(db, token_hash)
                    if session is None:
                        return 0
                    count = await sessions.revoke_all_user_sessions(db, session.user_id)
                    logger.info("Signed out everywhere user_id=%s sessions=%d",
                                session.user_id, count)
                    return count
                return 1 if await sessions.revoke_by_hash(db, token_hash) else 0
        except SQLAlchemyError as e:
            logger.warning("Signout revocation failed: %s", e)
            return 0

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _start_session(self, db, user: User, meta: Optional[RequestMeta]) -> SessionGrant:
        """Create and commit a refresh session, then mint the access token."""
        meta = meta or RequestMeta()
        now = utcnow()

        refresh_token, token_hash = new_refresh_secret()
        await sessions.create_session(
            db,
            user_id=user.id,
            token_hash=token_hash,
            expires_at=now + self.settings.refresh_ttl,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

        user.last_login_at = now
        user = await users.save_user(db, user)

        return SessionGrant(
            user=user,
            access_token=create_access_token(user, self.settings.access_ttl),
            refresh_token=refresh_token,
            refresh_max_age=self.cookies.refresh_max_age,
        )

    async def _renew(self, db, refresh_token: str) -> SessionGrant:
        now = utcnow()
        session = await sessions.find_active_by_hash(db, hash_refresh_secret(refresh_token))
        if not session or session.is_expired(now):
            raise AuthenticationError("Session expired", code="SESSION_EXPIRED", clear_cookies=True)

        user = await users.find_by_id(db, session.user_id)
        if not user or not user.is_active:
            raise AuthenticationError("User disabled", code="USER_DISABLED", clear_cookies=True)

        self._require_verified(user)

        return SessionGrant(
            user=user,
            access_token=create_access_token(user, self.settings.access_ttl),
            refresh_token=refresh_token,
            refresh_max_age=self.cookies.remaining_max_age(session.expires_at, now),
        )

    def _require_verified(self, user: User) -> None:
        """One gate for refresh and both branches of the probe."""
        if self.settings.REQUIRE_VERIFIED_EMAIL and not user.email_verified:
            raise AuthorizationError(
                "Verify your email first", code="EMAIL_NOT_VERIFIED", clear_cookies=True
            )
