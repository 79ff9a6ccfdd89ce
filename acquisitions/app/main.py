import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from acquisitions.app.api import auth_router, users_router
from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger, setup_logging
from acquisitions.app.db.async_session import close_async_engine, init_async_db
from acquisitions.app.exceptions import AcquisitionsException
from acquisitions.app.middleware.request_id import RequestIdMiddleware
from acquisitions.app.middleware.security.engine import LocalPolicyEngine, PolicyEngine
from acquisitions.app.middleware.security.middleware import SecurityMiddleware
from acquisitions.app.middleware.security_headers import SecurityHeadersMiddleware

_STARTED_AT = time.monotonic()


def format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into one human-readable string."""
    messages = []
    for error in exc.errors():
        # Drop the leading "body" / "path" / "query" segment
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        message = error.get("msg", "Invalid value")
        messages.append(f"{field}: {message}" if field else message)
    return ", ".join(messages)


def create_app(policy_engine: Optional[PolicyEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        policy_engine: Engine used by the security middleware. Defaults to
            a LocalPolicyEngine over the settings-selected window store.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    engine = policy_engine or LocalPolicyEngine()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await init_async_db()
        engine.start_cleanup_task(settings.rate_limit_cleanup_interval_seconds)
        logger.info("Application startup complete", extra={"debug_mode": settings.debug})

        yield

        await engine.stop_cleanup_task()
        await engine.close()
        await close_async_engine()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Acquisitions API",
        description="User accounts and sessions behind a role-aware request governor",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(SecurityMiddleware, engine=engine)

    # Hardening headers, outside the security gate so denials carry them too
    app.add_middleware(SecurityHeadersMiddleware)

    # Request ID + access log, outside the security gate so denials are logged too
    app.add_middleware(RequestIdMiddleware)

    # CORS middleware (outermost - handles preflight requests first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=600,
    )

    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        logger.info('Hello from "/" route')
        return "Hello, World!"

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "upTime": round(time.monotonic() - _STARTED_AT, 3),
        }

    @app.get("/api")
    async def api_root() -> dict[str, str]:
        return {"message": "Welcome to the Acquisitions API"}

    @app.exception_handler(AcquisitionsException)
    async def acquisitions_error_handler(request: Request, exc: AcquisitionsException) -> JSONResponse:
        """Render application exceptions as ``{"error": ..., "message": ...}``."""
        content = {"error": exc.error}
        if exc.message != exc.error:
            content["message"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation Failed", "details": format_validation_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "ROUTE Not Found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        The traceback is logged server-side only. Debug mode adds the
        exception message to the response.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        content = {"error": "Internal Server Error", "request_id": request_id}
        if settings.debug:
            content["message"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
