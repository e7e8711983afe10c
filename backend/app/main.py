"""Wellness diagnostics backend: FastAPI application entry point."""

import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before all other app imports
# (structlog caches the processor chain on first use).
from app.core.logging import configure_from_settings
from app.core.config import get_settings as _get_settings_early

configure_from_settings(_get_settings_early())

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import DiagnosticsAppError
from app.db import init_db, close_db
from app.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    if not settings.llm_configured:
        logger.warning("llm_not_configured", fallback="GatewayFake")

    yield

    logger.info("shutdown_begin")
    await close_db()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, detail, event: str, **extra) -> JSONResponse:
    debug_id = str(uuid.uuid4())
    logger.error(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=detail,
        **extra,
    )
    return JSONResponse(status_code=status_code, content={"detail": detail, "debug_id": debug_id})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking."""
    return _error_response(request, exc.status_code, exc.detail, "http_exception")


async def app_exception_handler(request: Request, exc: DiagnosticsAppError) -> JSONResponse:
    """Domain errors carry their own status code and a client-safe message."""
    return _error_response(
        request, exc.status_code, exc.detail, "app_exception", error_type=type(exc).__name__
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Organizational wellness diagnostics and action plans",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.cors_allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(DiagnosticsAppError)(app_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
