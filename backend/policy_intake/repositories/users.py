"""
User repository containing all data-access operations for the users table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from policy_intake.db.models.user import User


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    full_name: str,
    is_active: bool = True,
) -> User:
    """Create a directory entry."""
    user = User(
        email=email.lower().strip(),
        full_name=full_name.strip(),
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email address (case-insensitive)."""
    stmt = select(User).where(User.email == email.lower().strip())
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch an active user by email address."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    return user
