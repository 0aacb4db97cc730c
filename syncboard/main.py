"""ASGI entrypoint for the syncboard dashboard API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from syncboard import __version__
from syncboard.api import build_router
from syncboard.config import AppConfig, load_config
from syncboard.logging import configure_logging, get_logger
from syncboard.logging_events import log_event
from syncboard.middleware import setup_exception_handlers
from syncboard.runtime import DashboardRuntime, build_runtime

logger = get_logger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    runtime: DashboardRuntime | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Build the FastAPI application; ``runtime`` may be injected for tests."""

    resolved_config = runtime.config if runtime is not None else (config or load_config())
    resolved_runtime = runtime or build_runtime(resolved_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if configure_logs:
            configure_logging(resolved_config.logging.level, resolved_config.logging.file)
        log_event(
            logger,
            "app.startup",
            component="app",
            status="starting",
            workers_enabled=not resolved_config.workers.disabled,
            cache_enabled=resolved_config.progress_cache.enabled,
            telemetry_enabled=resolved_config.telemetry.enabled,
        )
        await resolved_runtime.start()
        try:
            yield
        finally:
            await resolved_runtime.stop()
            logger.info("syncboard application stopped")

    base_path = resolved_config.api_base_path
    app = FastAPI(
        title="syncboard",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{base_path}/docs",
        openapi_url=f"{base_path}/openapi.json",
        redoc_url=None,
    )
    app.state.runtime = resolved_runtime
    app.state.config_snapshot = resolved_config
    app.state.api_base_path = base_path

    setup_exception_handlers(app)
    app.include_router(build_router(base_path))
    return app


app = create_app()


__all__ = ["app", "create_app"]
