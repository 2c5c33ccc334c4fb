"""
Blaze Backend — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn blaze.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │  Rate Limit  │→│ Req ID   │→│  Logging        │  │
    │  └──────────────┘ └──────────┘ └─────────────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │ /api/confirm │ │ PWA      │ │ GET /health     │  │
    │  │ /api/response│ │ routes   │ │                 │  │
    │  │ /api/notify  │ │          │ │                 │  │
    │  └──────────────┘ └──────────┘ └─────────────────┘  │
    │                                                     │
    │  app.state:                                         │
    │    pending_confirmations  (PendingConfirmationStore)│
    │    push_dispatcher        (WebPushDispatcher)       │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (logged, not fatal)
    3. Create missing tables (retries while the database comes up)
    4. Load demo data when SEED_DEMO_DATA is on and no user exists

    Shutdown:
    1. Abandon confirmations still waiting (their requests are cancelled)
    2. Dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from blaze import __version__
from blaze.config import settings
from blaze.database import async_session_factory, dispose_engine, init_models
from blaze.exceptions import (
    BadRequestError,
    BlazeError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    UnauthorizedError,
    UnprocessableError,
)
from blaze.middleware.logging import RequestLoggingMiddleware
from blaze.middleware.rate_limit import RateLimitMiddleware
from blaze.middleware.request_id import RequestIDMiddleware, request_id_var
from blaze.routes import health, notifications, pwa
from blaze.services.account_service import account_service
from blaze.services.push_base import PushDispatcher
from blaze.services.rendezvous import PendingConfirmationStore
from blaze.services.store import AlarmStore
from blaze.services.webpush_service import WebPushDispatcher

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Output: stdout (Docker captures it)
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Quiet third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

async def load_demo_data() -> bool:
    """Startup hook: the demo admin and alarm, in their own transaction."""
    async with async_session_factory() as session:
        created = await account_service.seed_demo_data(AlarmStore(session))
        await session.commit()
    return created


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Blaze Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: /health reports the problem and controllers still get
        # errors in the response body
        logger.error("Configuration error: %s", str(e))

    await init_models()
    if settings.seed_demo_data:
        await load_demo_data()

    logger.info(
        "Confirmation timeout: %.1fs | push: %s",
        settings.confirmation_timeout,
        "configured" if app.state.push_dispatcher.is_configured() else "NOT configured",
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Blaze Backend shutting down...")

    abandoned = app.state.pending_confirmations.abandon_all()
    if abandoned:
        logger.warning("Abandoned %d pending confirmation(s) at shutdown", abandoned)

    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, error: str, exc: BlazeError, details: bool = False) -> JSONResponse:
    content = {
        "error": error,
        "message": exc.message,
        "request_id": request_id_var.get(""),
    }
    if details:
        content["details"] = exc.context
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and one JSON error shape.

    Handler hierarchy:
        BadRequestError / RequestValidationError → 400
        UnauthorizedError                        → 401
        NotFoundError                            → 404
        ConflictError                            → 409
        UnprocessableError                       → 422
        DatabaseError                            → 500 "Unknown error occurred"
        BlazeError (base)                        → 500
        Exception (fallback)                     → 500

    Response bodies never carry stack traces or SQL; context dicts are only
    included for client errors where they name the offending field.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Missing/unparseable query parameters or body fields."""
        rid = request_id_var.get("")
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        logger.info("[%s] Rejected parameters on %s: %s", rid, request.url.path, fields)
        return JSONResponse(
            status_code=400,
            content={
                "error": "bad_request",
                "message": "Missing or incorrect parameters",
                "details": {"fields": fields},
                "request_id": rid,
            },
        )

    @app.exception_handler(BadRequestError)
    async def handle_bad_request(request: Request, exc: BadRequestError):
        return _error_response(400, "bad_request", exc, details=True)

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        logger.info("[%s] Unauthorized: %s", request_id_var.get(""), exc.message)
        return _error_response(401, "unauthorized", exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error_response(409, "conflict", exc)

    @app.exception_handler(UnprocessableError)
    async def handle_unprocessable(request: Request, exc: UnprocessableError):
        return _error_response(422, "unprocessable", exc)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        """Generic message to the client, details logged server-side."""
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc)

    @app.exception_handler(BlazeError)
    async def handle_blaze_error(request: Request, exc: BlazeError):
        logger.error("[%s] Unhandled application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all so raw stack traces never reach the client."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "Unknown error occurred",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(push_dispatcher: Optional[PushDispatcher] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        push_dispatcher: Delivery backend for notifications. Defaults to a
            WebPushDispatcher built from settings; tests pass a fake.

    Each app owns its own PendingConfirmationStore, so two apps (e.g. in
    tests) never see each other's pending confirmations.
    """
    app = FastAPI(
        title="Blaze API",
        description=(
            "Fire alarm notification backend. Alarm controllers ask the alarm's owner "
            "to confirm a fire through web push and receive the answer in the same request."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Application State ─────────────────────────────────────────────────
    app.state.pending_confirmations = PendingConfirmationStore()
    app.state.push_dispatcher = push_dispatcher or WebPushDispatcher()

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in REVERSE order of addition: RateLimit → RequestID → Logging → GZip → CORS
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
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(notifications.router)
    app.include_router(pwa.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `blaze.main:app` to be importable
app = create_app()
