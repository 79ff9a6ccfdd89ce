"""Database package: the user model, async sessions and CRUD helpers."""

from acquisitions.app.db.base import Base
from acquisitions.app.db.models import User
from acquisitions.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    get_async_session,
    get_async_session_maker,
    get_db,
    init_async_db,
)
from acquisitions.app.db.dependencies import SessionDep

__all__ = [
    "Base",
    "User",
    "close_async_engine",
    "get_async_engine",
    "get_async_session",
    "get_async_session_maker",
    "get_db",
    "init_async_db",
    "SessionDep",
]
