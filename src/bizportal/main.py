"""FastAPI application entry point."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from bizportal import __version__
from bizportal.api.ratelimit import limiter, rate_limit_exceeded_handler
from bizportal.api.router import api_router
from bizportal.config import get_settings
from bizportal.infrastructure.database.connection import dispose_engine
from bizportal.infrastructure.external.portal_backend import PortalBackendClient
from bizportal.observability.metrics import setup_metrics
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.exceptions import (
    AuthenticationError,
    BizPortalError,
    NotFoundError,
    ScopeViolationError,
    StateConflictError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from bizportal.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    setup_logging()
    logger.info("bizportal_starting", version=__version__)

    settings = get_settings()
    app.state.portal_write_lock = getattr(app.state, "portal_write_lock", None) or WriterLock()
    if getattr(app.state, "portal_backend", None) is None and settings.remote_seeding_enabled:
        app.state.portal_backend = PortalBackendClient(
            settings.portal_backend_url,
            settings.portal_admin_key,
            timeout=settings.portal_backend_timeout,
        )

    yield

    # Shutdown
    logger.info("bizportal_stopping")
    backend = getattr(app.state, "portal_backend", None)
    if backend is not None:
        await backend.close()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="BizPortal API",
        description="Client portal trust and session core",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # CORS middleware
    if settings.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-Portal-Admin", "X-Request-ID"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Fresh log context per request
        structlog.contextvars.clear_contextvars()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # Exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(api_router, prefix="/api/v1")

    # Observability
    setup_metrics(app)

    return app


def _error_response(status_code: int, error: str, exc: BizPortalError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": exc.message,
            "details": exc.details,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers.

    Starlette resolves handlers along the exception's MRO, so subclasses
    (LockedError, PortalDisabledError, ...) use their parent's mapping.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        _ = request
        return _error_response(422, "validation_error", exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        _ = request
        # No details: a rejected credential must not say why
        return JSONResponse(
            status_code=401,
            content={
                "error": "authentication_error",
                "message": exc.message,
                "details": {},
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
        _ = request
        return _error_response(403, "unauthorized", exc)

    @app.exception_handler(ScopeViolationError)
    async def scope_violation_handler(request: Request, exc: ScopeViolationError) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=403,
            content={"error": "scope_violation", "message": exc.message, "details": {}},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        _ = request
        return _error_response(404, "not_found", exc)

    @app.exception_handler(StateConflictError)
    async def state_conflict_handler(request: Request, exc: StateConflictError) -> JSONResponse:
        _ = request
        return _error_response(409, "state_conflict", exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        _ = request
        logger.error("storage_error", error=exc.message)
        return JSONResponse(
            status_code=503,
            content={
                "error": "storage_unavailable",
                "message": "The record store is unavailable. Please retry.",
                "details": {},
            },
        )

    @app.exception_handler(BizPortalError)
    async def bizportal_error_handler(request: Request, exc: BizPortalError) -> JSONResponse:
        _ = request
        logger.error("unhandled_error", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An internal error occurred.",
                "details": {},
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        _ = request
        logger.exception("unexpected_error", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred.",
                "details": {},
            },
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Validation errors without the raw input (may carry signature data)."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


# Create app instance
app = create_app()
