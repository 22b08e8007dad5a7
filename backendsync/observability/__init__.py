"""Logging and metrics for backendsync."""
