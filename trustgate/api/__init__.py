"""
TrustGate REST API.

FastAPI-based authentication gateway.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
