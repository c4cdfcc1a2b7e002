"""
Notivate Backend - FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers; the
       lifespan builds the service graph (dependencies.build_services) on
       startup and closes it on shutdown.
Who:   uvicorn (`uvicorn notivate.main:app`), tests (create_app()).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:                                                 │
    │   POST /api/upload   GET /api/usage   /api/notes   /health│
    │                                                          │
    │  Exception Handlers:                                     │
    │   NotivateError → {error, message, request_id}           │
    │     QuotaExceededError adds currentUsage/limit/upgradePath│
    │     retry_after → Retry-After header                     │
    │   Exception → generic 500                                │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation (logged, not fatal) → build services
    Shutdown: close HTTP client, dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from notivate import __version__
from notivate.config import Settings, settings as default_settings
from notivate.dependencies import build_services
from notivate.exceptions import NotivateError, QuotaExceededError, UpstreamServiceError
from notivate.middleware.logging import RequestLoggingMiddleware
from notivate.middleware.request_id import RequestIDMiddleware, request_id_var
from notivate.routes import health, notes, upload, usage

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str) -> None:
    """Configures the root logger once, at startup."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "grpc"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

def make_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.log_level)
        logger.info("=" * 60)
        logger.info("Notivate Backend %s starting up...", __version__)

        # The server still starts so /health can report what is missing
        try:
            settings.validate_required_for_production()
        except ValueError as e:
            logger.error("Configuration error: %s", e)

        services = build_services(settings)
        app.state.services = services
        logger.info("Upload directory: %s", services.uploads.upload_dir)
        logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
        logger.info("=" * 60)

        yield

        logger.info("Notivate Backend shutting down...")
        await services.aclose()
        logger.info("Shutdown complete.")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get("")


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps the NotivateError hierarchy to JSON responses.

    Every error body carries a stable `error` code. Context dicts are logged,
    never returned. 5xx messages for internal failures are generic.
    """

    @app.exception_handler(QuotaExceededError)
    async def handle_quota_exceeded(request: Request, exc: QuotaExceededError):
        rid = _request_id(request)
        logger.info("[%s] Quota exceeded: %s", rid, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "currentUsage": exc.current_usage,
                "limit": exc.limit,
                "upgradePath": exc.upgrade_path,
                "request_id": rid,
            },
        )

    @app.exception_handler(NotivateError)
    async def handle_notivate_error(request: Request, exc: NotivateError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error(
                "[%s] %s: %s | Context: %s",
                rid,
                type(exc).__name__,
                exc.message,
                exc.context,
            )
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        # Upstream messages are written for users; other 5xx stay generic
        message = exc.message
        if exc.status_code >= 500 and not isinstance(exc, UpstreamServiceError):
            message = "An internal error occurred. Please try again later."

        headers = {}
        retry_after: Optional[int] = getattr(exc, "retry_after", None)
        if retry_after:
            headers["Retry-After"] = str(retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_code, "message": message, "request_id": rid},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(
        title="Notivate API",
        description=(
            "Turns a photo of notes into an AI study guide: OCR with Google Cloud Vision, "
            "synthesis with Google Gemini, metered by monthly quotas."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=make_lifespan(settings),
    )

    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(upload.router)
    app.include_router(usage.router)
    app.include_router(notes.router)
    app.include_router(health.router)

    return app


app = create_app()
