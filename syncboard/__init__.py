"""Polling dashboard for an external music synchronisation engine."""

__version__ = "0.3.0"
