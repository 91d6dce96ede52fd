"""
Ocean Stella - Error Taxonomy

Domain exceptions raised by the auth core and translated at the route
boundary into the JSON envelope:

    {"ok": false, "error": "<message>", "code": "<CODE>"}

Example:
    raise ConflictError("Email already in use", code="EMAIL_TAKEN")
"""

from typing import Any, Dict, Optional


class AuthError(Exception):
    """
    Base exception for every failure the API reports to clients.

    Attributes:
        status_code: HTTP status for the response
        code: Machine-readable error code
        message: Human-readable message (safe to expose)
        clear_cookies: Whether the response should also clear auth cookies
        extra: Additional envelope fields (e.g. needsVerification)
    """

    status_code = 500
    default_code = "ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        clear_cookies: bool = False,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.clear_cookies = clear_cookies
        self.extra = extra or {}

    def to_envelope(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.message, "code": self.code, **self.extra}


class ValidationError(AuthError):
    """400 - Malformed input or a rejected one-time code."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AuthError):
    """401 - Missing, bad or expired credential."""
    status_code = 401
    default_code = "UNAUTHENTICATED"


class AuthorizationError(AuthError):
    """403 - Valid credential blocked by account state or role."""
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(AuthError):
    """404 - Referenced account or session does not exist."""
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AuthError):
    """409 - Duplicate email."""
    status_code = 409
    default_code = "CONFLICT"


class RateLimitError(AuthError):
    """429 - OTP cooldown or attempt cap."""
    status_code = 429
    default_code = "RATE_LIMITED"


class DependencyError(AuthError):
    """500 - Email dispatch, identity provider or storage failure."""
    status_code = 500
    default_code = "DEPENDENCY_FAILED"
