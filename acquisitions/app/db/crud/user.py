"""User CRUD operations."""
from typing import Any, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from acquisitions.app.db.models import User


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get a user by primary key.

    Args:
        session: Database session from FastAPI dependency
        user_id: The user ID

    Returns:
        User object if found, None otherwise
    """
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def list_users(session: AsyncSession) -> List[User]:
    result = await session.execute(select(User).order_by(User.id))
    return list(result.scalars().all())


async def create_user(
    session: AsyncSession,
    name: str,
    email: str,
    password_hash: str,
    role: str = "user",
) -> User:
    """Insert a user and flush so the generated id is available.

    Raises:
        sqlalchemy.exc.IntegrityError: the email is already taken
    """
    user = User(name=name, email=email, password=password_hash, role=role)
    session.add(user)
    await session.flush()
    return user


async def update_user(
    session: AsyncSession,
    user: User,
    values: dict[str, Any],
) -> User:
    """Apply column updates to a loaded user and flush them."""
    for column, value in values.items():
        setattr(user, column, value)
    await session.flush()
    await session.refresh(user)
    return user


async def delete_user(session: AsyncSession, user_id: int) -> bool:
    """Delete a user by ID.

    Returns:
        True if a row was deleted, False if the user did not exist
    """
    result = await session.execute(delete(User).where(User.id == user_id))
    return result.rowcount > 0
