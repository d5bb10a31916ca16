"""Sync Windows root certificates into the WSL trust store."""

__version__ = "0.1.0"
