"""
Ocean Stella - Authentication Package

Cookie-based authentication with:
- Short-lived JWT access token (os_at) + revocable refresh session (os_rt)
- Email OTP verification before the first session
- Google sign-in through Firebase ID tokens
- bcrypt password hashing
"""

from oceanstella.auth.models import AuthSession, Role, User, UserStatus
from oceanstella.auth.pipeline import Pipeline, admin_only, authenticated
from oceanstella.auth.service import AuthService
from oceanstella.auth.tokens import create_access_token, verify_access_token

__all__ = [
    "User",
    "AuthSession",
    "Role",
    "UserStatus",
    "AuthService",
    "Pipeline",
    "authenticated",
    "admin_only",
    "create_access_token",
    "verify_access_token",
]
