"""Identity resolution from the session token.

The same primitive serves two call sites with different failure policy:

- ``resolve_principal`` is guest-tolerant. A missing or invalid token
  yields the guest principal; it never raises. The security middleware
  uses it to pick a rate tier.
- ``get_current_principal`` is strict. A missing or invalid token is a
  401. Route handlers that need an authenticated caller depend on it.
"""

from typing import Annotated, Callable, Optional

from fastapi import Depends, Request

from acquisitions.app.core.cookies import get_token_cookie
from acquisitions.app.core.logging import get_logger
from acquisitions.app.core.security import TokenService, get_token_service
from acquisitions.app.exceptions import AuthenticationError, PermissionDeniedError
from acquisitions.app.middleware.security.models import Principal, Role

logger = get_logger(__name__)


def extract_token(request: Request) -> Optional[str]:
    """Get the bearer credential, preferring the cookie over the header."""
    token = get_token_cookie(request)
    if token:
        return token

    auth = request.headers.get("Authorization", "")
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def principal_from_claims(claims: dict) -> Principal:
    user_id = claims.get("id")
    return Principal(
        id=int(user_id) if user_id is not None else None,
        email=claims.get("email"),
        role=Role.parse(claims.get("role")),
    )


def resolve_principal(request: Request, token_service: Optional[TokenService] = None) -> Principal:
    """Resolve the caller for rate limiting purposes.

    Invalid tokens are treated exactly like absent ones.
    """
    token = extract_token(request)
    if not token:
        return Principal.guest()

    token_service = token_service or get_token_service()
    try:
        claims = token_service.verify(token)
    except AuthenticationError:
        return Principal.guest()
    try:
        return principal_from_claims(claims)
    except (TypeError, ValueError):
        return Principal.guest()


def get_current_principal(request: Request) -> Principal:
    """FastAPI dependency: the authenticated caller, or 401."""
    token = extract_token(request)
    if not token:
        raise AuthenticationError("No token provided")

    try:
        claims = get_token_service().verify(token)
        principal = principal_from_claims(claims)
    except (AuthenticationError, TypeError, ValueError) as e:
        logger.warning("Authentication failed", extra={"reason": str(e)})
        raise AuthenticationError("Invalid or expired token") from e

    request.state.principal = principal
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_role(*roles: Role) -> Callable[[Principal], Principal]:
    """Dependency factory restricting a route to the given roles.

    Usage:
        @router.get("/", dependencies=[Depends(require_role(Role.ADMIN))])
    """
    allowed = frozenset(roles)

    def dependency(principal: CurrentPrincipal) -> Principal:
        if principal.role not in allowed:
            raise PermissionDeniedError("Insufficient permissions")
        return principal

    return dependency
