"""
Shared utilities for TrustGate.

This package provides:
- Secrets management
- Safe logging helpers
"""
from .secrets import get_secret, mask_secret, mask_email

__all__ = ["get_secret", "mask_secret", "mask_email"]
