"""
Ocean Stella - User Store

Persistence for user accounts. Email uniqueness is enforced by the
database index; a violation surfaces as DuplicateKeyError so callers can
tell "email taken" apart from any other storage failure.
"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session as DBSession, select

from oceanstella.auth.database import DuplicateKeyError, StorageError
from oceanstella.auth.models import Role, User, normalize_email, touch


async def find_by_email(db: DBSession, email: str) -> Optional[User]:
    statement = select(User).where(User.email == normalize_email(email))
    return db.exec(statement).first()


async def find_by_id(db: DBSession, user_id) -> Optional[User]:
    if not isinstance(user_id, UUID):
        try:
            user_id = UUID(str(user_id))
        except ValueError:
            return None
    return db.get(User, user_id)


async def count_users(db: DBSession) -> int:
    return db.exec(select(func.count()).select_from(User)).one()


async def bootstrap_role(db: DBSession, default: Role) -> str:
    """
    Pick the role for a brand-new account.

    The first account ever created becomes superadmin. Two simultaneous
    first signups can both observe an empty table; that race is accepted.
    """
    if await count_users(db) == 0:
        return Role.SUPERADMIN.value
    return default.value


async def create_user(db: DBSession, user: User) -> User:
    """
    Insert a new user.

    Raises:
        DuplicateKeyError: Email already registered
        StorageError: Any other database failure
    """
    try:
        db.add(user)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateKeyError(f"Email already registered: {e.orig}")
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not create user: {e}")

    db.refresh(user)
    return user


async def save_user(db: DBSession, user: User) -> User:
    """
    Persist changes to an existing user.

    Raises:
        DuplicateKeyError: Email changed to one already registered
    """
    touch(user)
    try:
        db.add(user)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateKeyError(f"Email already registered: {e.orig}")
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Could not save user: {e}")

    db.refresh(user)
    return user


async def delete_user(db: DBSession, user: User) -> None:
    db.delete(user)
    db.commit()


async def list_users(
    db: DBSession,
    q: str = "",
    status: str = "",
    role: str = "",
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[User], int]:
    """
    Paginated user listing for the admin screen.

    Returns:
        Tuple of (users on this page, total matching)
    """
    filters = []
    if status:
        filters.append(User.status == status)
    if role:
        filters.append(User.role == role)
    if q:
        # Literal substring match: % and _ in q are escaped
        needle = q.lower()
        filters.append(or_(
            func.lower(User.name).contains(needle, autoescape=True),
            User.email.contains(needle, autoescape=True),
        ))

    total = db.exec(select(func.count()).select_from(User).where(*filters)).one()

    statement = (
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(db.exec(statement).all()), total
