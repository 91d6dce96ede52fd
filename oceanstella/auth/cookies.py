"""
Ocean Stella - Auth Cookie Transport

Carries the two session credentials as HTTP-only cookies:

    os_at - access token  (max-age = ACCESS_TOKEN_TTL)
    os_rt - refresh secret (max-age <= remaining session life)

Production serves a separate frontend origin over HTTPS, so cookies are
Secure + SameSite=None. Development relaxes both (SameSite=Lax, not
Secure). Clearing reuses the exact attributes used to set, otherwise
browsers keep the cookie.
"""

from datetime import datetime, timedelta
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from oceanstella.auth.models import utcnow
from oceanstella.config import Settings


ACCESS_COOKIE = "os_at"
REFRESH_COOKIE = "os_rt"


class CookieTransport:
    """Writes and clears the auth cookie pair with one attribute set."""

    def __init__(
        self,
        production: bool,
        access_max_age: timedelta,
        refresh_max_age: timedelta,
    ):
        self.production = production
        self.access_max_age = int(access_max_age.total_seconds())
        self.refresh_max_age = int(refresh_max_age.total_seconds())

    @classmethod
    def from_settings(cls, settings: Settings) -> "CookieTransport":
        return cls(
            production=settings.is_production,
            access_max_age=settings.access_ttl,
            refresh_max_age=settings.refresh_ttl,
        )

    def base_options(self) -> dict:
        return {
            "httponly": True,
            "secure": self.production,
            "samesite": "none" if self.production else "lax",
            "path": "/",
        }

    def remaining_max_age(self, expires_at: datetime, now: Optional[datetime] = None) -> int:
        """
        Cookie lifetime for an existing session.

        Never longer than the configured refresh TTL nor than the time the
        session has left.
        """
        remaining = int(((expires_at - (now or utcnow())).total_seconds()))
        return max(0, min(self.refresh_max_age, remaining))

    def set_access_cookie(self, response: Response, access_token: str) -> None:
        response.set_cookie(
            ACCESS_COOKIE, access_token, max_age=self.access_max_age, **self.base_options()
        )

    def set_refresh_cookie(
        self, response: Response, refresh_token: str, max_age: Optional[int] = None
    ) -> None:
        if max_age is None:
            max_age = self.refresh_max_age
        response.set_cookie(
            REFRESH_COOKIE,
            refresh_token,
            max_age=min(max_age, self.refresh_max_age),
            **self.base_options(),
        )

    def set_session_cookies(
        self,
        response: Response,
        access_token: str,
        refresh_token: str,
        refresh_max_age: Optional[int] = None,
    ) -> None:
        self.set_access_cookie(response, access_token)
        self.set_refresh_cookie(response, refresh_token, refresh_max_age)

    def clear(self, response: Response) -> None:
        options = self.base_options()
        for name in (ACCESS_COOKIE, REFRESH_COOKIE):
            response.delete_cookie(
                name,
                path=options["path"],
                secure=options["secure"],
                httponly=options["httponly"],
                samesite=options["samesite"],
            )

    @staticmethod
    def read_access(request: Request) -> Optional[str]:
        return request.cookies.get(ACCESS_COOKIE) or None

    @staticmethod
    def read_refresh(request: Request) -> Optional[str]:
        return request.cookies.get(REFRESH_COOKIE) or None
