"""Identity service application.

Builds the FastAPI app: the /api/v1/auth routers, error envelopes,
security headers, rate limiting, and start-up work (table creation and
the outbound email self-test).

Run with: uvicorn app.main:app
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.deps import get_email_service
from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.database import create_tables
from app.core.errors import APIError
from app.core.rate_limiting import limiter, rate_limit_exceeded_handler
from app.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()

_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response.

    API responses may carry session cookies, registration tokens, or (in
    development) verification codes, so they are also marked no-store.
    HSTS is only sent in production, behind the TLS-terminating proxy.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        response.headers.update(_SECURITY_HEADERS)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, details=details)
        ).model_dump(),
    )


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError (including the identity error taxonomy)."""
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request body validation failures as 400 VALIDATION_ERROR.

    Only location, message, and type are returned. Submitted values
    (passwords, codes) are never echoed back.
    """
    return _error_response(
        400,
        "VALIDATION_ERROR",
        "Request validation failed",
        [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ],
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and return a bare 500."""
    logger.exception("unhandled_exception", exc_info=exc, path=request.url.path)
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def configure_logging(level: str) -> None:
    """Apply LOG_LEVEL to stdlib and structlog loggers."""
    numeric_level = logging.getLevelName(level)
    logging.basicConfig(level=numeric_level)
    logging.getLogger().setLevel(numeric_level)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level)
    )


async def _run_email_self_test() -> None:
    """Verify outbound email configuration once, off the request path."""
    ok = await get_email_service().check_configuration()
    logger.info("email_self_test_finished", ok=ok)


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Start-up and shutdown work.

    - Applies LOG_LEVEL
    - Creates missing tables when AUTO_CREATE_TABLES is set
    - Runs the email self-test as a background task when real delivery
      is configured
    """
    configure_logging(settings.log_level)

    if settings.auto_create_tables:
        await create_tables()

    self_test: asyncio.Task[None] | None = None
    if settings.email_self_test_on_startup and not settings.use_mock_email:
        self_test = asyncio.create_task(_run_email_self_test())

    yield

    if self_test is not None and not self_test.done():
        self_test.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self_test


def create_app() -> FastAPI:
    """Create and configure the identity service.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title=f"{settings.app_name} Identity API",
        version="1.0.0",
        description="Password, email code, and Google sign-in",
        lifespan=lifespan,
    )

    # Starlette runs the last-added middleware first; CORS must see
    # preflight requests before anything else.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter
    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        """Liveness probe."""
        return {"status": "healthy"}

    return app


app = create_app()
