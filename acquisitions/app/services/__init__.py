"""Service layer for the API."""

from acquisitions.app.services.auth_service import authenticate_user, create_user
from acquisitions.app.services.user_service import (
    delete_user,
    get_all_users,
    get_user_by_id,
    update_user,
)

__all__ = [
    "authenticate_user",
    "create_user",
    "delete_user",
    "get_all_users",
    "get_user_by_id",
    "update_user",
]
