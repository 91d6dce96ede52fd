"""
Ocean Stella - Credential Hashing Utilities

Password hashing using bcrypt, plus the fast digest used for one-time
verification codes.

Security:
- Never log or expose plaintext passwords or codes
- bcrypt includes salt automatically
- Code digests are compared in constant time
- Supports hash upgrades on login
"""

import hashlib
import hmac
from typing import Optional

import bcrypt

from oceanstella.config import settings
from oceanstella.errors import ValidationError


# bcrypt reads at most 72 bytes of input
BCRYPT_MAX_BYTES = 72


def fits_bcrypt(password: str) -> bool:
    """Whether the UTF-8 encoding of a password is within bcrypt's input limit."""
    return len(password.encode("utf-8")) <= BCRYPT_MAX_BYTES


def hash_password(password: str, work_factor: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        work_factor: Override for BCRYPT_WORK_FACTOR

    Returns:
        bcrypt hash string (includes salt)

    Raises:
        ValidationError: Password longer than 72 bytes once encoded

    Example:
        >>> hashed = hash_password("longenough1")
        >>> hashed.startswith("$2b$")
        True
    """
    if not fits_bcrypt(password):
        raise ValidationError("Password must be at most 72 bytes", code="PASSWORD_TOO_LONG")
    rounds = work_factor or settings.BCRYPT_WORK_FACTOR
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against a bcrypt hash.

    Uses constant-time comparison to prevent timing attacks. A missing or
    malformed hash is reported as a plain mismatch.

    Returns:
        True if password matches, False otherwise
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except (ValueError, TypeError):
        # Invalid hash format
        return False


def needs_rehash(hashed_password: str, target_work_factor: Optional[int] = None) -> bool:
    """
    Check if a password hash needs to be upgraded.

    Useful when BCRYPT_WORK_FACTOR is raised over time.

    Args:
        hashed_password: Existing bcrypt hash
        target_work_factor: Desired work factor

    Returns:
        True if hash should be regenerated
    """
    target = target_work_factor or settings.BCRYPT_WORK_FACTOR
    try:
        # bcrypt hash format: $2b$XX$...
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target
    except (ValueError, IndexError, AttributeError):
        # Not a valid bcrypt hash, definitely needs rehash
        return True


def hash_otp(code: str) -> str:
    """
    Digest a one-time code.

    Unsalted: a resubmitted code must produce the same digest.
    """
    return hashlib.sha256(str(code).encode("utf-8")).hexdigest()


def otp_matches(code: str, digest: Optional[str]) -> bool:
    """Constant-time comparison of a submitted code against a stored digest."""
    if not digest:
        return False
    return hmac.compare_digest(hash_otp(code), digest)
