"""Account creation and credential checks."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from acquisitions.app.core.logging import get_logger
from acquisitions.app.core.security import hash_password, verify_password
from acquisitions.app.db.crud import create_user as crud_create_user
from acquisitions.app.db.crud import get_user_by_email
from acquisitions.app.db.models import User
from acquisitions.app.exceptions import InvalidCredentialsError, UserAlreadyExistsError

logger = get_logger(__name__)


async def create_user(
    session: AsyncSession,
    name: str,
    email: str,
    password: str,
    role: str = "user",
) -> User:
    """Register a new user.

    Raises:
        UserAlreadyExistsError: the email is taken
    """
    if await get_user_by_email(session, email) is not None:
        raise UserAlreadyExistsError(email)

    try:
        user = await crud_create_user(
            session,
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
        )
    except IntegrityError as e:
        # Lost a race with a concurrent signup for the same email
        await session.rollback()
        raise UserAlreadyExistsError(email) from e

    logger.info(f"User {user.email} created with role {user.role}")
    return user


async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    """Check credentials and return the matching user.

    Raises:
        InvalidCredentialsError: unknown email or wrong password
    """
    user = await get_user_by_email(session, email)
    if user is None:
        logger.warning("Sign-in attempt for unknown email", extra={"email": email})
        raise InvalidCredentialsError()

    if not verify_password(password, user.password):
        logger.warning("Sign-in attempt with invalid password", extra={"email": email})
        raise InvalidCredentialsError()

    return user
