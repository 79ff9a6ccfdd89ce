"""User resource endpoints.

Listing and deletion are admin-only. Any authenticated user may read a
profile; updates are limited to the owner, except for admins, and only
admins may change a role.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from acquisitions.app.core.logging import get_logger
from acquisitions.app.db.dependencies import SessionDep
from acquisitions.app.exceptions import PermissionDeniedError
from acquisitions.app.middleware.auth import CurrentPrincipal, require_role
from acquisitions.app.middleware.security.models import Principal, Role
from acquisitions.app.services import user_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

UserId = Annotated[int, Path(gt=0, description="User ID")]


def normalize_name(v: str) -> str:
    v = v.strip()
    if len(v) < 2:
        raise ValueError("name must be at least 2 characters")
    return v


def normalize_email(v: str) -> str:
    v = v.strip().lower()
    # Shape check only: non-empty local part and a dotted domain
    local, _, domain = v.partition("@")
    if not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
        raise ValueError("invalid email")
    return v


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = Field(None, min_length=6, max_length=128)
    role: Optional[Literal["user", "admin"]] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: Optional[str]) -> Optional[str]:
        return normalize_name(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v is not None else v

    @model_validator(mode="after")
    def check_not_empty(self) -> "UpdateUserRequest":
        if not self.model_dump(exclude_none=True):
            raise ValueError("at least one field must be provided")
        return self


class UserResponse(BaseModel):
    message: str
    user: UserPublic


class UserListResponse(BaseModel):
    message: str
    users: list[UserPublic]
    count: int


class DeleteUserResponse(BaseModel):
    message: str
    userId: int


@router.get(
    "",
    response_model=UserListResponse,
    dependencies=[Depends(require_role(Role.ADMIN))],
)
async def fetch_all_users(session: SessionDep) -> UserListResponse:
    logger.info("Fetching all users")
    users = await user_service.get_all_users(session)
    return UserListResponse(
        message="Users fetched successfully",
        users=[UserPublic.model_validate(u) for u in users],
        count=len(users),
    )


@router.get("/{user_id}", response_model=UserResponse)
async def fetch_user_by_id(
    principal: CurrentPrincipal,
    session: SessionDep,
    user_id: UserId,
) -> UserResponse:
    logger.info(f"Fetching user with id: {user_id}")
    user = await user_service.get_user_by_id(session, user_id)
    return UserResponse(message="User fetched successfully", user=UserPublic.model_validate(user))


@router.put("/{user_id}", response_model=UserResponse)
async def update_user_by_id(
    data: UpdateUserRequest,
    principal: CurrentPrincipal,
    session: SessionDep,
    user_id: UserId,
) -> UserResponse:
    is_admin = principal.role is Role.ADMIN
    if principal.id != user_id and not is_admin:
        raise PermissionDeniedError("You can only update your own profile")
    if data.role is not None and not is_admin:
        raise PermissionDeniedError("Only admins can change user roles")

    logger.info(f"Updating user with id: {user_id}")
    user = await user_service.update_user(session, user_id, data.model_dump(exclude_none=True))
    return UserResponse(message="User updated successfully", user=UserPublic.model_validate(user))


@router.delete("/{user_id}", response_model=DeleteUserResponse)
async def delete_user_by_id(
    session: SessionDep,
    user_id: UserId,
    principal: Annotated[Principal, Depends(require_role(Role.ADMIN))],
) -> DeleteUserResponse:
    logger.info(f"Admin {principal.email} deleting user with id: {user_id}")
    deleted_id = await user_service.delete_user(session, user_id)
    return DeleteUserResponse(message="User deleted successfully", userId=deleted_id)
