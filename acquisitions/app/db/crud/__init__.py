"""CRUD operations split by model."""

from acquisitions.app.db.crud.user import (
    create_user,
    delete_user,
    get_user_by_email,
    get_user_by_id,
    list_users,
    update_user,
)

__all__ = [
    "create_user",
    "delete_user",
    "get_user_by_email",
    "get_user_by_id",
    "list_users",
    "update_user",
]
