"""
NoteWise Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers, routes and the
       process-wide collaborators (stored on `app.state`).
Who:   uvicorn (`uvicorn notewise.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  CORS → GZip → Request ID → Access Log      │
    │                                                          │
    │  Routes:                                                 │
    │  ┌──────────────┐ ┌──────────────────────────┐ ┌───────┐ │
    │  │ /api/analyze │ │ /api/jobs/daily-notif... │ │/health│ │
    │  └──────┬───────┘ └────────────┬─────────────┘ └───────┘ │
    │         ▼                      ▼                         │
    │  app.state.analysis_service   app.state.notification_job │
    │  (RateLimiter, Gemini, Local) (Fetcher, Aggregator,      │
    │                                Dispatcher, Auditor)      │
    │                                                          │
    │  Exception Handlers → {success: false, error, code, ...} │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, report missing production settings
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from notewise import __version__
from notewise.config import settings
from notewise.database import dispose_engine
from notewise.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DispatchError,
    NoteWiseError,
    RateLimitExceededError,
    StoreError,
    UpstreamError,
    ValidationError,
)
from notewise.middleware.logging import RequestLoggingMiddleware
from notewise.middleware.request_id import RequestIDMiddleware, request_id_var
from notewise.routes import analyze, health, jobs
from notewise.schemas.analysis import ErrorResponse
from notewise.services.analysis_service import AnalysisService
from notewise.services.auth import SupabaseAuthVerifier
from notewise.services.gemini_service import GeminiAnalyzer
from notewise.services.notification_job import NotificationJob
from notewise.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Output goes to stdout, which the container runtime collects.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("NoteWise Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: analysis falls back to local heuristics and /health
        # reports what is missing.
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Rate limit: %d requests / %ds per caller; notification window: %dh",
        settings.rate_limit_requests,
        settings.rate_limit_window,
        settings.notification_window_hours,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("NoteWise Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Renders the shared `{success: false, ...}` envelope."""
    body = ErrorResponse(
        error=message,
        code=code,
        details=details or None,
        request_id=request_id_var.get("") or None,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the error envelope.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400
        AuthenticationError                     → 401
        RateLimitExceededError                  → 429 + Retry-After
        UpstreamError (auth service outage)     → 500
        StoreError, DispatchError               → 500 (job failures)
        ConfigurationError                      → 500
        NoteWiseError (base)                    → 500
        Exception (fallback)                    → 500, generic message

    Only 4xx responses carry `details`; 5xx details are logged server-side.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
            for error in exc.errors()
        ]
        logger.warning("[%s] Malformed request body: %s", request_id_var.get(""), errors)
        return error_response(
            400, "validation_error", "Request body must be a JSON object", {"errors": errors}
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(401, "unauthorized", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(UpstreamError)
    async def handle_upstream_error(request: Request, exc: UpstreamError):
        rid = request_id_var.get("")
        logger.error("[%s] Upstream error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(500, "upstream_error", exc.message)

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        rid = request_id_var.get("")
        logger.error("[%s] Store error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(500, "store_error", exc.message)

    @app.exception_handler(DispatchError)
    async def handle_dispatch_error(request: Request, exc: DispatchError):
        rid = request_id_var.get("")
        logger.error("[%s] Dispatch error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(500, "dispatch_error", exc.message)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error("[%s] Configuration error: %s", request_id_var.get(""), exc.message)
        return error_response(500, "configuration_error", exc.message)

    @app.exception_handler(NoteWiseError)
    async def handle_notewise_error(request: Request, exc: NoteWiseError):
        logger.error("[%s] Application error: %s", request_id_var.get(""), exc.message)
        return error_response(500, "server_error", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return error_response(
            exc.status_code, "http_error", str(exc.detail), headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return error_response(500, "internal_server_error", "Internal server error")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators holding per-process state (the rate limiter windows and the
    circuit breaker) are built once here and shared by every request through
    `app.state`. Tests replace them on `app.state` directly.
    """
    app = FastAPI(
        title="NoteWise API",
        description=(
            "Content analysis (title, summary, tags) for NoteWise notes and the "
            "daily new-notes push notification job."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Collaborators ─────────────────────────────────────────────────────
    rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )
    gemini_analyzer = GeminiAnalyzer()
    app.state.rate_limiter = rate_limiter
    app.state.gemini_analyzer = gemini_analyzer
    app.state.analysis_service = AnalysisService(
        rate_limiter=rate_limiter,
        ai_analyzer=gemini_analyzer,
        retry_after=settings.rate_limit_window,
    )
    app.state.auth_verifier = SupabaseAuthVerifier()
    app.state.notification_job = NotificationJob()

    # ── Middleware ────────────────────────────────────────────────────────
    # Last added runs first: CORS → GZip → Request ID → Access Log.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    # CORSMiddleware answers preflights itself; any requested method or header
    # is accepted so that only the origin list can refuse one.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    register_exception_handlers(app)

    app.include_router(analyze.router)
    app.include_router(jobs.router)
    app.include_router(health.router)

    return app


app = create_app()
