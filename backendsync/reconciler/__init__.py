"""Reconciliation of watch notifications against the backend registry.

Submodules:
    tracker -- PodStateTracker: name → last confirmed registration.
    loop    -- ReconciliationLoop: the single consumer of the watch session.
"""

from backendsync.reconciler.loop import ReconciliationLoop
from backendsync.reconciler.tracker import PodStateTracker

__all__ = ["PodStateTracker", "ReconciliationLoop"]
