"""User management: lookups, updates and deletion."""

from typing import Any, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from acquisitions.app.core.logging import get_logger
from acquisitions.app.core.security import hash_password
from acquisitions.app.db import crud
from acquisitions.app.db.models import User
from acquisitions.app.exceptions import UserAlreadyExistsError, UserNotFoundError

logger = get_logger(__name__)


async def get_all_users(session: AsyncSession) -> List[User]:
    return await crud.list_users(session)


async def get_user_by_id(session: AsyncSession, user_id: int) -> User:
    """Get a user or raise UserNotFoundError."""
    user = await crud.get_user_by_id(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def update_user(session: AsyncSession, user_id: int, updates: dict[str, Any]) -> User:
    """Apply a partial update to a user.

    A new password is hashed before storing.

    Raises:
        UserNotFoundError: no user with this id
        UserAlreadyExistsError: the new email belongs to another user
    """
    user = await get_user_by_id(session, user_id)

    values = dict(updates)
    if "password" in values:
        values["password"] = hash_password(values["password"])

    if "email" in values and values["email"] != user.email:
        if await crud.get_user_by_email(session, values["email"]) is not None:
            raise UserAlreadyExistsError(values["email"])

    try:
        user = await crud.update_user(session, user, values)
    except IntegrityError as e:
        await session.rollback()
        raise UserAlreadyExistsError(values.get("email")) from e

    logger.info(f"User {user_id} updated successfully")
    return user


async def delete_user(session: AsyncSession, user_id: int) -> int:
    """Delete a user and return its id.

    Raises:
        UserNotFoundError: no user with this id
    """
    if not await crud.delete_user(session, user_id):
        raise UserNotFoundError(user_id)
    logger.info(f"User {user_id} deleted successfully")
    return user_id
