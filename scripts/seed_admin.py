#!/usr/bin/env python3
"""Seed script to create the first admin account."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from moderation_core.core.security import hash_password
from moderation_core.database import async_session_maker
from moderation_core.models.user import User
from moderation_core.schemas.user import UserRole


async def create_admin_user(
    email: str = "admin@moderation.local",
    password: str = "admin12345",
    display_name: str | None = "Admin",
) -> None:
    """Create an admin user if it doesn't exist."""
    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        existing_user = result.scalar_one_or_none()

        if existing_user:
            if existing_user.role == UserRole.admin.value:
                print(f"Admin user already exists: {email}")
            else:
                existing_user.role = UserRole.admin.value
                await db.commit()
                print(f"Upgraded existing user to admin: {email}")
            return

        admin = User(
            email=email.lower(),
            password_hash=hash_password(password),
            display_name=display_name,
            role=UserRole.admin.value,
        )
        db.add(admin)
        await db.commit()
        print(f"Created admin user: {email}")
        print(f"Password: {password}")


async def set_user_role(email: str, role: UserRole) -> None:
    """Change the role of an existing user.

    Bypasses the role-management endpoint, so it can bootstrap the first
    moderators before any admin is able to log in.
    """
    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if not user:
            print(f"User not found: {email}")
            return

        if user.role == role.value:
            print(f"User already has role {role.value}: {email}")
            return

        user.role = role.value
        await db.commit()
        print(f"Set role {role.value} for {email}")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Staff account seeder")
    parser.add_argument(
        "--email",
        default="admin@moderation.local",
        help="Admin email (default: admin@moderation.local)",
    )
    parser.add_argument(
        "--password",
        default="admin12345",
        help="Admin password (default: admin12345)",
    )
    parser.add_argument(
        "--display-name",
        default="Admin",
        help="Display name (default: Admin)",
    )
    parser.add_argument(
        "--make-moderator",
        metavar="EMAIL",
        help="Make an existing user a moderator by email",
    )
    parser.add_argument(
        "--make-admin",
        metavar="EMAIL",
        help="Make an existing user an admin by email",
    )

    args = parser.parse_args()

    if args.make_admin:
        asyncio.run(set_user_role(args.make_admin, UserRole.admin))
    elif args.make_moderator:
        asyncio.run(set_user_role(args.make_moderator, UserRole.moderator))
    else:
        asyncio.run(create_admin_user(args.email, args.password, args.display_name))


if __name__ == "__main__":
    main()
