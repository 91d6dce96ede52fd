"""
Ocean Stella - Cookie Transport and Config Tests
"""

from datetime import timedelta

from starlette.responses import Response

from oceanstella.auth.cookies import ACCESS_COOKIE, REFRESH_COOKIE, CookieTransport
from oceanstella.auth.models import utcnow
from oceanstella.config import DEFAULT_REFRESH_TTL, parse_duration


def transport(production=False):
    return CookieTransport(
        production=production,
        access_max_age=timedelta(minutes=15),
        refresh_max_age=timedelta(days=10),
    )


def set_cookies(response):
    return [v.decode("latin-1") for k, v in response.raw_headers if k == b"set-cookie"]


class TestCookieAttributes:

    def test_development_attributes(self):
        options = transport().base_options()

        assert options == {"httponly": True, "secure": False, "samesite": "lax", "path": "/"}

    def test_production_attributes(self):
        options = transport(production=True).base_options()

        assert options["secure"] is True
        assert options["samesite"] == "none"

    def test_set_session_cookies(self):
        response = Response()
        transport().set_session_cookies(response, "access-jwt", "refresh-secret")

        headers = set_cookies(response)
        assert any(h.startswith(f"{ACCESS_COOKIE}=access-jwt") and "Max-Age=900" in h
                   for h in headers)
        assert any(h.startswith(f"{REFRESH_COOKIE}=refresh-secret") and "Max-Age=864000" in h
                   for h in headers)

    def test_refresh_max_age_is_capped(self):
        response = Response()
        transport().set_refresh_cookie(response, "secret", max_age=10 ** 9)

        assert "Max-Age=864000" in set_cookies(response)[0]

    def test_clear_uses_same_attributes(self):
        response = Response()
        transport(production=True).clear(response)

        headers = set_cookies(response)
        assert len(headers) == 2
        for header in headers:
            lowered = header.lower()
            assert "max-age=0" in lowered
            assert "secure" in lowered
            assert "samesite=none" in lowered
            assert "path=/" in lowered


class TestRemainingMaxAge:

    def test_remaining_life(self):
        now = utcnow()

        assert transport().remaining_max_age(now + timedelta(hours=2), now) == 7200

    def test_never_exceeds_ttl(self):
        now = utcnow()

        assert transport().remaining_max_age(now + timedelta(days=30), now) == 864000

    def test_never_negative(self):
        now = utcnow()

        assert transport().remaining_max_age(now - timedelta(minutes=1), now) == 0


class TestParseDuration:

    def test_units(self):
        assert parse_duration("15m", DEFAULT_REFRESH_TTL) == timedelta(minutes=15)
        assert parse_duration("10d", DEFAULT_REFRESH_TTL) == timedelta(days=10)
        assert parse_duration("30s", DEFAULT_REFRESH_TTL) == timedelta(seconds=30)
        assert parse_duration("2h", DEFAULT_REFRESH_TTL) == timedelta(hours=2)

    def test_unparsable_falls_back(self):
        assert parse_duration("ten days", DEFAULT_REFRESH_TTL) == DEFAULT_REFRESH_TTL
        assert parse_duration("", DEFAULT_REFRESH_TTL) == DEFAULT_REFRESH_TTL
        assert parse_duration("5w", DEFAULT_REFRESH_TTL) == DEFAULT_REFRESH_TTL
