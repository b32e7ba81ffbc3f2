"""
EcoDex Backend - FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn ecodex.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐                 │
    │  │ Rate Limit │→│  Req ID  │→│ Logging │                 │
    │  └────────────┘ └──────────┘ └─────────┘                 │
    │                                                          │
    │  Routes:                                                 │
    │  ┌───────────────────┐ ┌─────────────────┐ ┌──────────┐  │
    │  │ POST identify/chat│ │ GET entries/stat│ │ /health  │  │
    │  └───────────────────┘ └─────────────────┘ └──────────┘  │
    │                                                          │
    │  Exception Handlers:                                     │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ Input/Decode→400 │ Oracle→503 │ Malformed→502 │... │  │
    │  └────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from ecodex import __version__
from ecodex.config import settings
from ecodex.database import dispose_engine
from ecodex.exceptions import (
    CircuitBreakerOpenError,
    EcoDexError,
    ImageDecodeError,
    InputValidationError,
    MalformedOracleResponseError,
    NotFoundError,
    OracleUnavailableError,
    PersistenceError,
)
from ecodex.middleware.logging import RequestLoggingMiddleware
from ecodex.middleware.rate_limit import RateLimitMiddleware
from ecodex.middleware.request_id import RequestIDMiddleware, request_id_var
from ecodex.routes import discoveries, health, identify, users

logger = logging.getLogger(__name__)

# Raw oracle text is truncated in logs; the full text still goes back in `details`
RAW_RESPONSE_LOG_CHARS = 500


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during app startup, before any other initialization.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("EcoDex Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health and the collection endpoints still work
        logger.error("Configuration error: %s", str(e))
        logger.error("Species identification will fail until the configuration is fixed.")

    logger.info(
        "Oracle model=%s timeout=%ds, images bounded to %dx%d",
        settings.gemini_model,
        settings.oracle_timeout,
        settings.image_max_width,
        settings.image_max_height,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("EcoDex Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(exc: EcoDexError, status_code: int, details=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.kind,
            "message": exc.message,
            "details": details,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

    Handler table:
        InputValidationError         → 400
        ImageDecodeError             → 400
        NotFoundError                → 404
        CircuitBreakerOpenError      → 503 + Retry-After
        OracleUnavailableError       → 503 + Retry-After (when known)
        MalformedOracleResponseError → 502, details.raw_response
        PersistenceError             → 500, details.stage / details.persisted
        EcoDexError (base)           → 500
        Exception (fallback)         → 500 internal_server_error

    Response bodies never carry stack traces or SQL; those are logged.
    """

    @app.exception_handler(InputValidationError)
    async def handle_input_validation(request: Request, exc: InputValidationError):
        logger.warning("[%s] Input validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(exc, 400, details=exc.context or None)

    @app.exception_handler(ImageDecodeError)
    async def handle_image_decode(request: Request, exc: ImageDecodeError):
        logger.warning("[%s] Image decode error: %s", request_id_var.get(""), exc.context)
        return _error_response(exc, 400, details=exc.context or None)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(exc, 404)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            exc,
            503,
            details={"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(OracleUnavailableError)
    async def handle_oracle_unavailable(request: Request, exc: OracleUnavailableError):
        logger.error("[%s] Oracle unavailable: %s", request_id_var.get(""), exc.message)
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return _error_response(exc, 503, details=exc.context or None, headers=headers)

    @app.exception_handler(MalformedOracleResponseError)
    async def handle_malformed_oracle_response(request: Request, exc: MalformedOracleResponseError):
        logger.warning(
            "[%s] Malformed oracle response (%s): %r",
            request_id_var.get(""),
            exc.context.get("reason", "unknown"),
            exc.raw_response[:RAW_RESPONSE_LOG_CHARS],
        )
        return _error_response(exc, 502, details=exc.context)

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error(
            "[%s] Persistence error at stage=%s persisted=%s | Context: %s",
            request_id_var.get(""),
            exc.stage,
            exc.persisted,
            exc.context,
        )
        return _error_response(
            exc,
            500,
            details={"stage": exc.stage, "persisted": exc.persisted},
        )

    @app.exception_handler(EcoDexError)
    async def handle_ecodex_error(request: Request, exc: EcoDexError):
        logger.error("[%s] Application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(exc, 500)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all. Stack trace is logged server-side only."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "details": None,
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="EcoDex API",
        description=(
            "Photograph plants and animals, identify them with a multimodal model "
            "and build a personal collection of discoveries with rarity tiers, "
            "experience and levels."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )

    # Entries carry base64 images; list and detail payloads compress well
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(identify.router)
    app.include_router(discoveries.router)
    app.include_router(users.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
