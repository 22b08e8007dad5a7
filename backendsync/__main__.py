"""Entry point for `python -m backendsync`.

Usage:
    python -m backendsync
    BACKENDSYNC_NAMESPACE=games python -m backendsync
"""

from __future__ import annotations

from backendsync.app import run

run()
