"""Bulk mutation orchestrator for administrative record sets."""

__version__ = "0.3.0"
