"""
Ocean Stella - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- Authentication and user routes under /v1
- Database lifecycle management
- Error envelope handlers

Collaborators (database, mailer, federation verifier, auth service) live on
app.state. Anything already placed there before startup is left alone, so
tests can inject fakes.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oceanstella import __version__
from oceanstella.auth import sessions as session_store
from oceanstella.auth.cookies import CookieTransport
from oceanstella.auth.database import Database, StorageError
from oceanstella.auth.federation import FirebaseVerifier
from oceanstella.auth.mailer import OtpMailer
from oceanstella.auth.routes import router as auth_router
from oceanstella.auth.service import AuthService
from oceanstella.config import settings
from oceanstella.errors import AuthError
from oceanstella.gateway.middleware import SecurityMiddleware
from oceanstella.logging_config import configure_logging
from oceanstella.users.routes import router as users_router

logger = logging.getLogger(__name__)


def init_state(app: FastAPI) -> None:
    """Build the collaborators that are not already present on app.state."""
    state = app.state

    if getattr(state, "database", None) is None:
        state.database = Database(settings.DATABASE_URL)
        state.database.init_db()
    if getattr(state, "cookies", None) is None:
        state.cookies = CookieTransport.from_settings(settings)
    if getattr(state, "mailer", None) is None:
        state.mailer = OtpMailer.from_settings(settings)
        logger.info("OTP mailer mode: %s", state.mailer.mode)
    if getattr(state, "federation", None) is None:
        state.federation = FirebaseVerifier.from_settings(settings)
        if not state.federation.is_configured:
            logger.warning("Firebase credentials missing; Google sign-in is unavailable")
    if getattr(state, "auth_service", None) is None:
        state.auth_service = AuthService(
            settings=settings,
            database=state.database,
            mailer=state.mailer,
            federation=state.federation,
            cookies=state.cookies,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Configure logging
        - Initialize database tables and auth collaborators
        - Prune expired refresh sessions

    Shutdown:
        - Dispose the connection pool
    """
    configure_logging(settings.LOG_LEVEL)
    init_state(app)

    with app.state.database.session() as db:
        pruned = await session_store.cleanup_expired_sessions(db)
    if pruned:
        logger.info("Pruned %d expired sessions", pruned)

    logger.info("Ocean Stella API started env=%s", settings.APP_ENV)

    yield

    app.state.database.dispose()


# =============================================================================
# Error envelope
# =============================================================================

async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content=exc.to_envelope())
    if exc.clear_cookies:
        request.app.state.cookies.clear(response)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
         "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "Invalid request", "code": "VALIDATION_ERROR",
                 "errors": errors},
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Storage unavailable", "code": "STORAGE_FAILED"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ocean Stella API",
        description="Accounts and sessions for the Ocean Stella store",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS - credentials required for the cookie pair
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Request id, token attach, security headers, access log
    app.add_middleware(SecurityMiddleware)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router, prefix="/v1")
    app.include_router(users_router, prefix="/v1")

    @app.get("/health", tags=["health"])
    async def health_check():
        """Liveness probe."""
        return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
