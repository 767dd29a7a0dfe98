"""API Routes."""
from .auth import router as auth_router
from .verification import router as verification_router
from .biometric import router as biometric_router
from .health import router as health_router

__all__ = ["auth_router", "verification_router", "biometric_router", "health_router"]
