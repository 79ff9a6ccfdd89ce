"""API routers."""

from acquisitions.app.api.auth import router as auth_router
from acquisitions.app.api.users import router as users_router

__all__ = ["auth_router", "users_router"]
