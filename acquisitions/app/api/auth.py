"""Sign-up, sign-in and sign-out endpoints.

A successful sign-up or sign-in issues a session token in the ``token``
cookie; sign-out clears it.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field, field_validator

from acquisitions.app.api.users import UserPublic, normalize_email, normalize_name
from acquisitions.app.core.cookies import clear_token_cookie, set_token_cookie
from acquisitions.app.core.logging import get_logger
from acquisitions.app.core.security import get_token_service
from acquisitions.app.db.dependencies import SessionDep
from acquisitions.app.db.models import User
from acquisitions.app.services import auth_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignUpRequest(BaseModel):
    name: str = Field(..., max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    role: Literal["user", "admin"] = "user"

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return normalize_name(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return normalize_email(v)


class SignInRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return normalize_email(v)


class AuthResponse(BaseModel):
    message: str
    user: UserPublic


class MessageResponse(BaseModel):
    message: str


def _issue_token(response: Response, user: User) -> None:
    token = get_token_service().sign({"id": user.id, "email": user.email, "role": user.role})
    set_token_cookie(response, token)


@router.post("/sign-up", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(data: SignUpRequest, response: Response, session: SessionDep) -> AuthResponse:
    user = await auth_service.create_user(
        session,
        name=data.name,
        email=data.email,
        password=data.password,
        role=data.role,
    )
    _issue_token(response, user)

    logger.info(f"User signed up: {user.email}")
    return AuthResponse(message="User created successfully", user=UserPublic.model_validate(user))


@router.post("/sign-in", response_model=AuthResponse)
async def sign_in(data: SignInRequest, response: Response, session: SessionDep) -> AuthResponse:
    user = await auth_service.authenticate_user(session, data.email, data.password)
    _issue_token(response, user)

    logger.info(f"User signed in: {user.email}")
    return AuthResponse(message="User signed in successfully", user=UserPublic.model_validate(user))


@router.post("/sign-out", response_model=MessageResponse)
async def sign_out(response: Response) -> MessageResponse:
    clear_token_cookie(response)
    logger.info("User signed out")
    return MessageResponse(message="User signed out successfully")
