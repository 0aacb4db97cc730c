"""FastAPI dependency providers."""

from __future__ import annotations

from fastapi import Request

from syncboard.errors import InternalServerError
from syncboard.runtime import DashboardRuntime


def get_runtime(request: Request) -> DashboardRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if not isinstance(runtime, DashboardRuntime):
        raise InternalServerError("Dashboard runtime is not initialised.")
    return runtime


__all__ = ["get_runtime"]
