#!/usr/bin/env python3
"""Create an admin user, or promote an existing account to admin."""

import argparse
import asyncio

from sqlalchemy import select

from app.core.security import get_password_hash
from app.database import get_db_context
from app.models.user import User, UserRole


async def create_admin(email: str, password: str) -> None:
    """Create the admin if it doesn't exist, otherwise reset and promote it."""
    email = email.lower()
    async with get_db_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        existing = result.scalar_one_or_none()

        if existing:
            existing.password_hash = get_password_hash(password)
            existing.role = UserRole.ADMIN.value
            existing.is_active = True
            print(f"Updated existing user as admin: {email}")
        else:
            session.add(
                User(
                    email=email,
                    password_hash=get_password_hash(password),
                    role=UserRole.ADMIN.value,
                    is_active=True,
                )
            )
            print(f"Created admin user: {email}")

    print(f"Email: {email}")
    print("Role: admin")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--email", default="admin@example.com", help="Admin email")
    parser.add_argument("--password", required=True, help="Admin password")

    args = parser.parse_args()

    asyncio.run(create_admin(email=args.email, password=args.password))
