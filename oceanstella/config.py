"""
Ocean Stella - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
A missing JWT_ACCESS_SECRET fails at import time, never per-request.
"""

import re
from datetime import timedelta
from typing import List

from pydantic import validator
from pydantic_settings import BaseSettings


DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=10)

_DURATION_RE = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str, fallback: timedelta) -> timedelta:
    """
    Parse a compact duration such as "15m" or "10d".

    Unparsable values fall back to the supplied default.
    """
    match = _DURATION_RE.match(str(value or "").strip())
    if not match:
        return fallback
    amount, unit = int(match.group(1)), match.group(2).lower()
    return timedelta(**{_DURATION_UNITS[unit]: amount})


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        APP_ENV: "development" or "production" (drives cookie security)
        JWT_ACCESS_SECRET: HMAC key for access tokens (required)
        ACCESS_TOKEN_TTL: Access token lifetime, e.g. "15m"
        REFRESH_TOKEN_TTL: Refresh session lifetime, e.g. "10d"
        ALLOW_PUBLIC_SIGNUP: Whether POST /auth/signup is open
        REQUIRE_VERIFIED_EMAIL: Block refresh for unverified accounts
        SMTP_*: Outbound mail for verification codes
        FB_*: Firebase service account for Google sign-in
    """

    APP_ENV: str = "development"

    # Security
    JWT_ACCESS_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_TTL: str = "15m"
    REFRESH_TOKEN_TTL: str = "10d"
    BCRYPT_WORK_FACTOR: int = 12
    PASSWORD_MIN_LENGTH: int = 8

    # Account policy
    ALLOW_PUBLIC_SIGNUP: bool = False
    REQUIRE_VERIFIED_EMAIL: bool = True

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./oceanstella.db"

    # SMTP for verification codes
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    EMAIL_FROM: str = ""

    # Firebase (Google sign-in)
    FB_PROJECT_ID: str = ""
    FB_CLIENT_EMAIL: str = ""
    FB_PRIVATE_KEY: str = ""

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "https://oceanstella.vercel.app",
        "http://localhost:5173",
    ]

    LOG_LEVEL: str = "INFO"

    @validator("JWT_ACCESS_SECRET")
    def secret_present(cls, v):
        """Refuse to start without a signing secret."""
        if not v or not v.strip():
            raise ValueError("JWT_ACCESS_SECRET must be set")
        return v

    @validator("APP_ENV")
    def known_env(cls, v):
        v = v.strip().lower()
        if v not in {"development", "production", "test"}:
            raise ValueError(f"Unknown APP_ENV: {v}")
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def access_ttl(self) -> timedelta:
        return parse_duration(self.ACCESS_TOKEN_TTL, DEFAULT_ACCESS_TTL)

    @property
    def refresh_ttl(self) -> timedelta:
        return parse_duration(self.REFRESH_TOKEN_TTL, DEFAULT_REFRESH_TTL)

    @property
    def firebase_private_key(self) -> str:
        # Keys pasted into .env carry literal "\n" sequences
        return self.FB_PRIVATE_KEY.replace("\\n", "\n")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
