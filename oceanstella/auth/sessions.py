"""
Ocean Stella - Refresh Session Store

Server-side persistence for refresh sessions.
Every hot-path lookup is a point query on the indexed token hash.

Security:
- Only the SHA-256 hash of the refresh secret is stored
- Signout revokes immediately; revoked rows are never usable again
- expires_at is written once and never extended
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session as DBSession, select

from oceanstella.auth.database import DuplicateKeyError, StorageError
from oceanstella.auth.models import AuthSession, new_auth_session, utcnow


async def create_session(
    db: DBSession,
    user_id: UUID,
    token_hash: str,
    expires_at: datetime,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthSession:
    """
    Persist a new refresh session.

    The row is committed before this returns, so callers may hand the
    refresh cookie to the client afterwards.

    Raises:
        DuplicateKeyError: (user_id, token_hash) already exists
        StorageError: Any other database failure
    """
    session = new_auth_session(
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    try:
        db.add(session)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateKeyError(f"Session already exists: {e.orig}")
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not create session: {e}")

    db.refresh(session)
    return session


async def find_active_by_hash(db: DBSession, token_hash: str) -> Optional[AuthSession]:
    """
    Find an unrevoked session by refresh hash.

    Expiry is left to the caller, which needs expires_at anyway to size
    the refresh cookie.
    """
    statement = select(AuthSession).where(
        AuthSession.token_hash == token_hash,
        AuthSession.revoked_at == None,  # noqa: E711
    )
    return db.exec(statement).first()


async def revoke_by_hash(db: DBSession, token_hash: str) -> bool:
    """
    Revoke the session matching a refresh hash (signout).

    Returns:
        True if a session was revoked, False if none matched
    """
    session = await find_active_by_hash(db, token_hash)
    if not session:
        return False

    session.revoked_at = utcnow()
    db.add(session)
    db.commit()
    return True


async def revoke_session(db: DBSession, session_id: UUID) -> bool:
    """Revoke a session by id."""
    session = db.get(AuthSession, session_id)
    if not session or session.revoked_at is not None:
        return False

    session.revoked_at = utcnow()
    db.add(session)
    db.commit()
    return True


async def revoke_all_user_sessions(db: DBSession, user_id: UUID) -> int:
    """
    Revoke every open session for a user (sign out everywhere).

    Returns:
        Number of sessions revoked
    """
    statement = select(AuthSession).where(
        AuthSession.user_id == user_id,
        AuthSession.revoked_at == None,  # noqa: E711
    )

    now = utcnow()
    count = 0
    for session in db.exec(statement).all():
        session.revoked_at = now
        db.add(session)
        count += 1

    db.commit()
    return count


async def get_active_sessions(db: DBSession, user_id: UUID) -> List[AuthSession]:
    """
    Get all unrevoked, unexpired sessions for a user.

    Use cases:
        - Show user their signed-in devices
        - Admin audit
    """
    statement = select(AuthSession).where(
        AuthSession.user_id == user_id,
        AuthSession.revoked_at == None,  # noqa: E711
        AuthSession.expires_at > utcnow(),
    ).order_by(AuthSession.created_at.desc())

    return list(db.exec(statement).all())


async def delete_user_sessions(db: DBSession, user_id: UUID) -> int:
    """Hard-delete a user's sessions (account deletion cascade)."""
    sessions = db.exec(select(AuthSession).where(AuthSession.user_id == user_id)).all()
    for session in sessions:
        db.delete(session)
    db.commit()
    return len(sessions)


async def cleanup_expired_sessions(db: DBSession) -> int:
    """
    Delete expired sessions, revoked or not.

    Runs at application startup.

    Returns:
        Number of sessions removed
    """
    statement = select(AuthSession).where(AuthSession.expires_at < utcnow())
    sessions = db.exec(statement).all()
    for session in sessions:
        db.delete(session)
    db.commit()
    return len(sessions)
