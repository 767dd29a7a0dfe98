"""
Health Check Endpoints.

Provides health status for the API and its dependencies.
"""
import os
import time
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ..models import HealthStatus

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

VERSION = os.getenv("APP_VERSION", "0.1.0")


def _ping_database(request: Request) -> float:
    """Run SELECT 1 against the store and return latency in ms."""
    db = getattr(request.app.state, "auth_db", None)
    if db is None:
        raise RuntimeError("not configured")
    start = time.time()
    with db.get_session() as session:
        session.execute(text("SELECT 1"))
    return (time.time() - start) * 1000


@router.get("", response_model=HealthStatus)
async def health_check(request: Request):
    """
    Basic health check endpoint.

    Returns overall system status.
    """
    services = {}
    overall_healthy = True

    try:
        latency = _ping_database(request)
        services["database"] = f"healthy ({latency:.1f}ms)"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        services["database"] = "unhealthy"
        overall_healthy = False

    # The provider is a remote service; only report whether it is wired up
    if getattr(request.app.state, "identity_provider", None) is not None:
        services["identity_provider"] = "configured"
    else:
        services["identity_provider"] = "not configured"
        overall_healthy = False

    return HealthStatus(
        status="healthy" if overall_healthy else "unhealthy",
        version=VERSION,
        services=services,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness probe.

    Returns 200 if the service is running.
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request):
    """
    Kubernetes readiness probe.

    Returns 200 if the data store answers, 503 otherwise.
    """
    try:
        _ping_database(request)
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": "Data store unavailable"},
        )
