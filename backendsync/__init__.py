"""backendsync keeps a reverse proxy's backend set in sync with cluster pods."""

__version__ = "0.1.0"
