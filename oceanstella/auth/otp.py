"""
Ocean Stella - Email Verification Codes

State machine for the 6-digit code that gates local signup. The state
lives on the User row:

    NoChallenge -> Pending -> Verified | Expired | AttemptsExhausted

Functions here only mutate the User; persisting it (in every outcome, so
the attempt counter survives failed calls) is the caller's job.
"""

import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from oceanstella.auth.models import User, utcnow
from oceanstella.auth.password import hash_otp, otp_matches
from oceanstella.errors import RateLimitError, ValidationError


OTP_DIGITS = 6
OTP_TTL = timedelta(minutes=10)
OTP_MAX_ATTEMPTS = 8
OTP_RESEND_COOLDOWN = timedelta(seconds=60)


def generate_code() -> str:
    """Uniform 6-digit code; leading zeros allowed."""
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def issue_challenge(user: User, now: Optional[datetime] = None) -> str:
    """
    Start (or restart) a challenge.

    Returns:
        The plaintext code; only its digest is kept on the user
    """
    now = now or utcnow()
    code = generate_code()
    user.email_otp_hash = hash_otp(code)
    user.email_otp_expires_at = now + OTP_TTL
    user.email_otp_last_sent_at = now
    user.email_otp_attempts = 0
    return code


def clear_challenge(user: User) -> None:
    user.email_otp_hash = None
    user.email_otp_expires_at = None
    user.email_otp_attempts = 0


def snapshot_challenge(user: User) -> Dict[str, object]:
    """Capture challenge fields so a failed resend can be undone."""
    return {
        "email_otp_hash": user.email_otp_hash,
        "email_otp_expires_at": user.email_otp_expires_at,
        "email_otp_last_sent_at": user.email_otp_last_sent_at,
        "email_otp_attempts": user.email_otp_attempts,
    }


def restore_challenge(user: User, snapshot: Dict[str, object]) -> None:
    for field, value in snapshot.items():
        setattr(user, field, value)


def ensure_resend_allowed(user: User, now: Optional[datetime] = None) -> None:
    """
    Raises:
        RateLimitError: Previous code went out less than 60 seconds ago
    """
    now = now or utcnow()
    last = user.email_otp_last_sent_at
    if last is not None and now - last < OTP_RESEND_COOLDOWN:
        raise RateLimitError("Wait 60 seconds before resending", code="TOO_SOON")


def verify_challenge(user: User, code: str, now: Optional[datetime] = None) -> None:
    """
    Check a submitted code against the pending challenge.

    Every call that reaches a live challenge counts as an attempt, right
    or wrong. Once the counter reaches OTP_MAX_ATTEMPTS the challenge is
    dead even for the correct code; the user must request a new one.

    Raises:
        ValidationError: NOT_REQUESTED, OTP_EXPIRED or INVALID_CODE
        RateLimitError: TOO_MANY_ATTEMPTS
    """
    now = now or utcnow()

    if not user.has_pending_otp:
        raise ValidationError("No OTP requested", code="NOT_REQUESTED")

    if user.email_otp_expires_at < now:
        raise ValidationError("OTP expired", code="OTP_EXPIRED")

    user.email_otp_attempts = (user.email_otp_attempts or 0) + 1
    if user.email_otp_attempts >= OTP_MAX_ATTEMPTS:
        raise RateLimitError("Too many attempts. Resend code.", code="TOO_MANY_ATTEMPTS")

    if not otp_matches(code, user.email_otp_hash):
        raise ValidationError("Invalid code", code="INVALID_CODE")

    clear_challenge(user)
    user.email_verified = True
