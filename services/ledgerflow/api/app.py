"""
FastAPI application factory for Ledgerflow API server.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ledgerflow.auth.tokens import require_signing_secret
from ledgerflow.config import settings
from ledgerflow.db.session import close_db, init_db
from ledgerflow.errors import ErrorKind, ServiceError
from ledgerflow.logging_config import configure_logging, get_logger

from .health import router as health_router

logger = get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.SIGNATURE_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    logger.info("Starting Ledgerflow API server", version="0.1.0")

    # Refuse to start without a signing secret
    require_signing_secret(settings.auth)

    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down Ledgerflow API server")
    await close_db()


def error_response(exc: ServiceError) -> JSONResponse:
    """Translate a classified service error to its HTTP status."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
        headers=headers,
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Ledgerflow API",
        description="Ledgerflow - multi-tenant project and CI metadata backend",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware
    if settings.cors.allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        """Map classified service errors to status codes."""
        if exc.kind == ErrorKind.INTERNAL:
            logger.error("Internal service error", exc_info=exc, path=str(request.url.path))
        else:
            logger.debug(
                "Request failed",
                kind=exc.kind.value,
                error=exc.message,
                path=str(request.url.path),
            )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed request bodies are VALIDATION errors."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid')}" if field else "Invalid request body"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": message, "kind": ErrorKind.VALIDATION.value},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "kind": ErrorKind.INTERNAL.value},
        )

    # Health endpoints (no prefix)
    app.include_router(health_router)

    # Auth routes
    from ledgerflow.api.routers.auth import router as auth_router

    app.include_router(auth_router, prefix=settings.api_prefix)

    # Workspace, membership and role routes
    from ledgerflow.api.routers.workspaces import router as workspaces_router

    app.include_router(workspaces_router, prefix=settings.api_prefix)

    # Project routes
    from ledgerflow.api.routers.projects import router as projects_router

    app.include_router(projects_router, prefix=settings.api_prefix)

    # Project permission routes
    from ledgerflow.api.routers.permissions import router as permissions_router

    app.include_router(permissions_router, prefix=settings.api_prefix)

    # Environment routes
    from ledgerflow.api.routers.environments import router as environments_router

    app.include_router(environments_router, prefix=settings.api_prefix)

    # CI run routes
    from ledgerflow.api.routers.ci_runs import router as ci_runs_router

    app.include_router(ci_runs_router, prefix=settings.api_prefix)

    # GitHub link and webhook routes
    from ledgerflow.api.routers.github import router as github_router

    app.include_router(github_router, prefix=settings.api_prefix)

    # Settings: API tokens and workspace access
    from ledgerflow.api.routers.settings import router as settings_router

    app.include_router(settings_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_application()
