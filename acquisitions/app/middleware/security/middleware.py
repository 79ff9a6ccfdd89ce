"""Security middleware gating every request.

Per request, in a single pass:
resolve identity -> select tier -> evaluate -> pass through, 403 or 500.
"""

from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_log_context, get_logger
from acquisitions.app.core.security import TokenService
from acquisitions.app.middleware.auth import resolve_principal
from acquisitions.app.middleware.security.engine import (
    LocalPolicyEngine,
    PolicyEngine,
    build_fingerprint,
)
from acquisitions.app.middleware.security.heuristics import RequestMeta
from acquisitions.app.middleware.security.models import Decision, DenialReason
from acquisitions.app.middleware.security.tiers import select_tier

logger = get_logger(__name__)

_DENIAL_LOG_MESSAGES = {
    DenialReason.BOT: "Bot request blocked",
    DenialReason.SHIELD: "Shield blocked request",
    DenialReason.RATE_LIMIT: "Rate limit exceeded",
}


def _rate_limit_headers(decision: Decision) -> dict[str, str]:
    if decision.limit is None:
        return {}
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }


class SecurityMiddleware(BaseHTTPMiddleware):
    """Role-aware rate limiting with bot and shield checks.

    Denied requests get 403 with ``{"error": "Forbidden", "message": ...}``.
    If the policy engine fails the request gets 500; it is never retried
    and never let through.
    """

    def __init__(
        self,
        app,
        engine: Optional[PolicyEngine] = None,
        token_service: Optional[TokenService] = None,
        trust_forwarded_for: Optional[bool] = None,
    ):
        super().__init__(app)
        self.engine = engine or LocalPolicyEngine()
        self.token_service = token_service
        self.trust_forwarded_for = (
            settings.trust_forwarded_for if trust_forwarded_for is None else trust_forwarded_for
        )

    async def _decide(self, request: Request) -> tuple[Decision, RequestMeta]:
        principal = resolve_principal(request, self.token_service)
        tier = select_tier(principal.role)
        meta = RequestMeta.from_request(request, self.trust_forwarded_for)
        fingerprint = build_fingerprint(tier, meta.client_ip)
        request.state.rate_tier = tier
        decision = await self.engine.evaluate(fingerprint, tier, meta)
        return decision, meta

    def _deny(self, request: Request, decision: Decision, meta: RequestMeta) -> Response:
        context = get_log_context(
            request_id=getattr(request.state, "request_id", None),
            client_ip=meta.client_ip,
            user_agent=meta.user_agent,
            path=meta.path,
            rule=decision.rule,
        )
        if decision.reason is not DenialReason.RATE_LIMIT:
            context["method"] = meta.method
        logger.warning(_DENIAL_LOG_MESSAGES[decision.reason], extra=context)

        return JSONResponse(
            status_code=403,
            content={"error": "Forbidden", "message": decision.message},
            headers=_rate_limit_headers(decision),
        )

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            decision, meta = await self._decide(request)
        except Exception as e:
            logger.error(
                f"Security middleware error: {e}",
                exc_info=True,
                extra=get_log_context(
                    request_id=getattr(request.state, "request_id", None),
                    path=request.url.path,
                ),
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "message": str(e)},
            )

        if not decision.allowed:
            return self._deny(request, decision, meta)

        response = await call_next(request)
        response.headers.update(_rate_limit_headers(decision))
        return response
