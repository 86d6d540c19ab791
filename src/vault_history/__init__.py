"""Revision history and merge-conflict engine for vault items."""

__version__ = "0.1.0"
