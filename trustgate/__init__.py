"""
TrustGate - Mobile Authentication Core

Password login delegated to Supabase Auth, with optional TOTP two-factor
authentication and biometric trusted-device registration.

This package provides the authentication state machine (credential
verification, second-factor gating, session normalization) and the
FastAPI surface exposing it.
"""

__version__ = "0.1.0"
__author__ = "TrustGate Team"
