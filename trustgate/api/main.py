"""
TrustGate REST API - Main Application.

FastAPI-based authentication gateway: registration and login against the
identity provider, TOTP two-factor enrollment and trusted devices for
biometric sign-in.

Usage:
    # Development
    uvicorn trustgate.api.main:app --reload --port 8000

    # Production
    uvicorn trustgate.api.main:app --host 0.0.0.0 --port 8000 --workers 4
"""
import os
import time
import uuid
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from .routes import auth_router, verification_router, biometric_router, health_router
from .responses import api_response, error_response
from ..config import get_settings
from ..errors import TrustGateError

# Configure logging with request context support
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
)


class RequestIdFilter(logging.Filter):
    """Add request_id to log records."""
    def filter(self, record):
        if not hasattr(record, 'request_id'):
            record.request_id = '-'
        return True


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format=LOG_FORMAT,
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)

# API metadata
API_TITLE = "TrustGate API"
API_DESCRIPTION = """
**Authentication gateway**

- **Accounts** - Registration, email confirmation and password login via the identity provider
- **Two-factor authentication** - TOTP enrollment with QR code, code-gated login
- **Biometric devices** - Per-user registry of trusted devices

## Authentication

Protected endpoints require `Authorization: Bearer <access_token>` from
`POST /api/auth/login` or `POST /api/auth/login-with-code`.

## Responses

Every response uses the same envelope:
`{error, success, code, httpStatus, message, payload?, meta?}`.
"""
API_VERSION = os.getenv("APP_VERSION", "0.1.0")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Creates the store and identity-provider handles once per process unless
    they were already attached to app.state.
    """
    logger.info(f"Starting TrustGate API v{API_VERSION}")
    settings = get_settings()

    owns_db = False
    owns_provider = False
    if getattr(app.state, "auth_db", None) is None:
        try:
            from ..database.auth_db import AuthDB
            db = AuthDB(settings.database_url)
            db.init_schema()
            app.state.auth_db = db
            owns_db = True
            logger.info("Database schema initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    if getattr(app.state, "identity_provider", None) is None:
        try:
            from ..identity.provider import create_identity_provider
            app.state.identity_provider = create_identity_provider(settings)
            owns_provider = True
        except Exception as e:
            logger.warning(f"Identity provider not configured: {e}")

    yield

    logger.info("Shutting down TrustGate API")
    if owns_db:
        app.state.auth_db.engine.dispose()
    if owns_provider:
        app.state.identity_provider.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_settings().cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request tracking and security headers middleware
    @app.middleware("http")
    async def add_request_tracking_and_security(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] Request failed: {e}", exc_info=True)
            raise

        process_time = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"

        # Skip health checks to reduce noise
        if not request.url.path.startswith("/health"):
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} "
                f"-> {response.status_code} ({process_time:.1f}ms)"
            )

        # Security headers
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # Exception handlers
    @app.exception_handler(TrustGateError)
    async def trustgate_exception_handler(request: Request, exc: TrustGateError):
        if exc.http_status >= 500:
            request_id = getattr(request.state, 'request_id', 'unknown')
            logger.error(f"[{request_id}] {exc.code}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            loc = " -> ".join(str(l) for l in error["loc"])
            errors.append(f"{loc}: {error['msg']}")

        return api_response(
            1000,
            "Invalid request",
            payload={"detail": "; ".join(errors)},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True)
        return api_response(
            5000,
            "Internal server error",
            meta={"request_id": request_id},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(verification_router)
    app.include_router(biometric_router)

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "trustgate.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
