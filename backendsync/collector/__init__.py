"""Collector package for backendsync.

Turns the cluster's pod watch stream into classified backend actions.

Submodules
----------
watcher    -- WatchSessionManager: resumable watch, exponential back-off,
              resync by full list when the resume token expires.
classifier -- classify(): pure mapping from a notification to an Action.
"""

from backendsync.collector.classifier import classify
from backendsync.collector.watcher import SessionState, WatchSessionManager

__all__ = ["SessionState", "WatchSessionManager", "classify"]
