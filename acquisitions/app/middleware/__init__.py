"""Middleware package for the API."""

from acquisitions.app.middleware.auth import (
    get_current_principal,
    require_role,
    resolve_principal,
)
from acquisitions.app.middleware.request_id import RequestIdMiddleware, get_request_id
from acquisitions.app.middleware.security.middleware import SecurityMiddleware
from acquisitions.app.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "get_current_principal",
    "require_role",
    "resolve_principal",
    "RequestIdMiddleware",
    "get_request_id",
    "SecurityMiddleware",
    "SecurityHeadersMiddleware",
]
