"""HTTP middleware and exception handlers."""

from syncboard.middleware.errors import setup_exception_handlers

__all__ = ["setup_exception_handlers"]
