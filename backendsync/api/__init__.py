"""Admin REST API for backendsync.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by backendsync.app bootstrap).
"""

from backendsync.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
