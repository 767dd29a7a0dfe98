"""
Database access for TrustGate.

This package provides:
- auth_db: second-factor profiles and trusted devices (SQLAlchemy)
"""
from .auth_db import AuthDB, get_auth_db

__all__ = ["AuthDB", "get_auth_db"]
