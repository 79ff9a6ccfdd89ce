"""Helpers for the session token cookie."""

from typing import Any, Optional

from fastapi import Request, Response

from acquisitions.app.core.config import settings

TOKEN_COOKIE_NAME = "token"


def get_cookie_options() -> dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "strict",
        "max_age": settings.cookie_max_age_seconds,
    }


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(TOKEN_COOKIE_NAME, token, **get_cookie_options())


def clear_token_cookie(response: Response) -> None:
    options = get_cookie_options()
    response.delete_cookie(
        TOKEN_COOKIE_NAME,
        httponly=options["httponly"],
        secure=options["secure"],
        samesite=options["samesite"],
    )


def get_token_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(TOKEN_COOKIE_NAME)
