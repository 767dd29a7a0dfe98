#!/usr/bin/env python3
"""
Initialize the TrustGate database schema.

Creates the profiles and trusted_devices tables if they do not exist.
Connection settings come from DATABASE_URL or POSTGRES_* variables.

Usage:
    python scripts/init_db.py
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trustgate.database.auth_db import get_auth_db
from trustgate.errors import UpstreamError


def main() -> int:
    print("=" * 60)
    print("TrustGate Database Initialization")
    print("=" * 60)

    db = get_auth_db()

    print("\n[1] Creating tables...")
    try:
        db.init_schema()
    except UpstreamError as e:
        print(f"    Failed: {e}")
        return 1
    print("    profiles, trusted_devices ready")

    print("\n" + "=" * 60)
    print("Initialization complete!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
