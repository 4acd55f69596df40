"""Logging setup and context."""
