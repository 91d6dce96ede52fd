"""
Ocean Stella - Test Configuration

Pytest fixtures for authentication testing.
Provides test database, client, fake mailer/verifier and user fixtures.
"""

import os

# Must be set before oceanstella.config is imported
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-not-for-production")
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_WORK_FACTOR"] = "4"
os.environ["ALLOW_PUBLIC_SIGNUP"] = "true"
os.environ["REQUIRE_VERIFIED_EMAIL"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import re
from datetime import timedelta
from typing import Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, select

from oceanstella.app import create_app
from oceanstella.auth.cookies import ACCESS_COOKIE, REFRESH_COOKIE, CookieTransport
from oceanstella.auth.database import Database
from oceanstella.auth.federation import ExternalIdentity
from oceanstella.auth.mailer import EmailDispatchError
from oceanstella.auth.models import AuthSession, Role, User, UserStatus, new_user, utcnow
from oceanstella.auth.password import hash_password
from oceanstella.auth.service import AuthService
from oceanstella.config import settings
from oceanstella.errors import AuthenticationError


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

DEFAULT_PASSWORD = "CorrectHorse9"


# =============================================================================
# Fakes
# =============================================================================

class FakeMailer:
    """Records every code instead of sending it."""

    mode = "fake"

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def send_otp(self, to: str, code: str) -> None:
        self.sent.append((to, code))

    def last_code(self, to: str) -> Optional[str]:
        for address, code in reversed(self.sent):
            if address == to:
                return code
        return None


class FailingMailer(FakeMailer):
    """Every dispatch fails."""

    async def send_otp(self, to: str, code: str) -> None:
        raise EmailDispatchError("Could not send verification email. Please check SMTP settings.")


class FakeVerifier:
    """Maps known ID tokens to identities; anything else is rejected."""

    provider = "google"
    is_configured = True

    def __init__(self):
        self.identities: Dict[str, ExternalIdentity] = {}

    def register(self, token: str, email: Optional[str], uid: str = "g-uid-1",
                 name: str = "Google Person", picture: Optional[str] = None) -> str:
        self.identities[token] = ExternalIdentity(
            provider="google", uid=uid, email=email, name=name, picture=picture
        )
        return token

    async def verify(self, id_token: str) -> ExternalIdentity:
        identity = self.identities.get(id_token)
        if identity is None:
            raise AuthenticationError("Invalid Google token", code="INVALID_EXTERNAL_TOKEN")
        return identity


# =============================================================================
# Database / app
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import models to register them
    from oceanstella.auth.models import User, AuthSession  # noqa: F401

    SQLModel.metadata.create_all(engine)

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def database(test_engine) -> Database:
    return Database(TEST_DATABASE_URL, engine=test_engine)


@pytest.fixture(scope="function")
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture(scope="function")
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture(scope="function")
def cookies() -> CookieTransport:
    return CookieTransport.from_settings(settings)


@pytest.fixture(scope="function")
def auth_service(database, mailer, verifier, cookies) -> AuthService:
    return AuthService(
        settings=settings,
        database=database,
        mailer=mailer,
        federation=verifier,
        cookies=cookies,
    )


@pytest.fixture(scope="function")
def app(database, mailer, verifier, cookies, auth_service):
    """App wired to the test database and fakes."""
    application = create_app()
    application.state.database = database
    application.state.cookies = cookies
    application.state.mailer = mailer
    application.state.federation = verifier
    application.state.auth_service = auth_service
    return application


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client with fresh database."""
    yield TestClient(app)


# =============================================================================
# Users
# =============================================================================

def insert_user(
    database: Database,
    email: str,
    role: Role = Role.VIEWER,
    password: Optional[str] = DEFAULT_PASSWORD,
    verified: bool = True,
    status: UserStatus = UserStatus.ACTIVE,
    name: str = "Test User",
) -> User:
    """Write a user straight to the database."""
    user = new_user(
        name=name,
        email=email,
        role=role.value,
        password_hash=hash_password(password) if password else None,
        email_verified=verified,
        status=status.value,
    )
    with database.session() as db:
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


def update_user(database: Database, user_id, **fields) -> User:
    with database.session() as db:
        user = db.get(User, user_id)
        for key, value in fields.items():
            setattr(user, key, value)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user


def load_user(database: Database, email: str) -> Optional[User]:
    with database.session() as db:
        return db.exec(select(User).where(User.email == email)).first()


def load_sessions(database: Database, user_id) -> List[AuthSession]:
    with database.session() as db:
        return list(db.exec(select(AuthSession).where(AuthSession.user_id == user_id)).all())


def expire_sessions_in(database: Database, user_id, delta: timedelta) -> None:
    """Move every session of a user to expire `delta` from now."""
    with database.session() as db:
        statement = select(AuthSession).where(AuthSession.user_id == user_id)
        for session in db.exec(statement).all():
            session.expires_at = utcnow() + delta
            db.add(session)
        db.commit()


@pytest.fixture(scope="function")
def test_superadmin(database) -> User:
    return insert_user(database, "owner@oceanstella.test", role=Role.SUPERADMIN, name="Owner")


@pytest.fixture(scope="function")
def test_admin(database) -> User:
    return insert_user(database, "admin@oceanstella.test", role=Role.ADMIN, name="Admin")


@pytest.fixture(scope="function")
def test_viewer(database) -> User:
    return insert_user(database, "viewer@oceanstella.test", role=Role.VIEWER, name="Viewer")


@pytest.fixture(scope="function")
def unverified_user(database) -> User:
    return insert_user(database, "pending@oceanstella.test", verified=False, name="Pending")


@pytest.fixture(scope="function")
def disabled_user(database) -> User:
    return insert_user(
        database, "disabled@oceanstella.test", status=UserStatus.DISABLED, name="Disabled"
    )


# =============================================================================
# HTTP helpers
# =============================================================================

def signin(client: TestClient, email: str, password: str = DEFAULT_PASSWORD):
    """Sign in; on success the client's cookie jar holds os_at and os_rt."""
    return client.post("/v1/auth/signin", json={"email": email, "password": password})


def cookie_header(access: Optional[str] = None, refresh: Optional[str] = None) -> dict:
    """Explicit Cookie header, for requests that must carry only one credential."""
    parts = []
    if access:
        parts.append(f"{ACCESS_COOKIE}={access}")
    if refresh:
        parts.append(f"{REFRESH_COOKIE}={refresh}")
    return {"Cookie": "; ".join(parts)}


def set_cookie_headers(response, name: str) -> List[str]:
    return [h for h in response.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


def cookie_max_age(response, name: str) -> Optional[int]:
    """Max-Age of the Set-Cookie for `name`, or None if it was not set."""
    for header in set_cookie_headers(response, name):
        match = re.search(r"max-age=(-?\d+)", header, re.IGNORECASE)
        if match:
            return int(match.group(1))
    return None
