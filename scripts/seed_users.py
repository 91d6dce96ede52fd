"""
Ocean Stella - Database Seed Script

Creates the initial superadmin account for development, so the admin
screens are usable without going through signup.

Usage:
    python -m scripts.seed_users
"""

import asyncio
import getpass
import os

from oceanstella.auth import users as user_store
from oceanstella.auth.database import Database
from oceanstella.auth.models import Role, new_user
from oceanstella.auth.password import hash_password
from oceanstella.config import settings


DEFAULT_EMAIL = "admin@oceanstella.local"


async def seed_superadmin(database: Database, email: str, password: str, name: str = "Admin"):
    """Create a verified superadmin unless the address is already registered."""
    with database.session() as db:
        existing = await user_store.find_by_email(db, email)
        if existing:
            print(f"User {email} already exists ({existing.role}).")
            return existing

        user = await user_store.create_user(db, new_user(
            name=name,
            email=email,
            role=Role.SUPERADMIN.value,
            password_hash=hash_password(password),
            email_verified=True,
        ))
        print("Superadmin created successfully!")
        print(f"  Email: {user.email}")
        print(f"  Role: {user.role}")
        return user


def main():
    print("=" * 50)
    print("Ocean Stella - User Seed Script")
    print("=" * 50)

    email = os.environ.get("SEED_ADMIN_EMAIL") or DEFAULT_EMAIL
    password = os.environ.get("SEED_ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        print(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters.")
        return

    database = Database(settings.DATABASE_URL)
    database.init_db()
    try:
        asyncio.run(seed_superadmin(database, email, password))
    finally:
        database.dispose()

    print()
    print("Done!")


if __name__ == "__main__":
    main()
