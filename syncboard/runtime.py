"""Wiring of the services, snapshots and workers shared by the API."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from syncboard.config import AppConfig
from syncboard.db import SessionFactory, session_scope
from syncboard.logging import get_logger
from syncboard.services.correlation import CorrelationMap
from syncboard.services.fact_store import FactStore
from syncboard.services.health import HealthProbe
from syncboard.services.playlists import PlaylistService
from syncboard.services.progress import ProgressPoller
from syncboard.services.progress_cache import ProgressCacheAdapter
from syncboard.services.stats import StatsCalculator
from syncboard.services.telemetry import LogFeed, TelemetryClient
from syncboard.workers import CorrelationWorker, PeriodicWorker, ProgressWorker, TelemetryWorker

logger = get_logger(__name__)


@dataclass(slots=True)
class DashboardRuntime:
    config: AppConfig
    fact_store: FactStore
    cache: ProgressCacheAdapter | None
    telemetry: TelemetryClient | None
    correlation: CorrelationMap
    progress: ProgressPoller
    log_feed: LogFeed
    health: HealthProbe
    stats: StatsCalculator
    playlists: PlaylistService
    workers: list[PeriodicWorker] = field(default_factory=list)

    async def start(self) -> None:
        if self.config.workers.disabled:
            logger.info("Background workers disabled by configuration")
            return
        # Prime the correlation map before the first progress poll depends on it.
        await self.correlation.refresh()
        for worker in self.workers:
            await worker.start()

    async def stop(self) -> None:
        for worker in reversed(self.workers):
            await worker.stop()
        if self.cache is not None:
            await self.cache.close()


def build_runtime(
    config: AppConfig,
    *,
    session_factory: SessionFactory | None = None,
    cache: ProgressCacheAdapter | None = None,
    telemetry_transport: httpx.AsyncBaseTransport | None = None,
) -> DashboardRuntime:
    """Create the runtime for ``config``; collaborators may be injected for tests."""

    fact_store = FactStore(
        session_factory=session_factory or session_scope,
        playlist_limit=config.database.playlist_limit,
    )
    if cache is None:
        cache = ProgressCacheAdapter.from_config(config.progress_cache)
    telemetry = TelemetryClient.from_config(config.telemetry, transport=telemetry_transport)

    correlation = CorrelationMap(fact_store.load_correlations)
    progress = ProgressPoller(cache, correlation)
    log_feed = LogFeed(telemetry, limit=config.telemetry.log_limit)

    workers: list[PeriodicWorker] = [
        CorrelationWorker(correlation, config.workers.correlation_interval_s),
    ]
    if cache is not None:
        workers.append(ProgressWorker(progress, config.workers.progress_interval_s))
    if telemetry is not None:
        workers.append(TelemetryWorker(log_feed, config.workers.telemetry_interval_s))

    return DashboardRuntime(
        config=config,
        fact_store=fact_store,
        cache=cache,
        telemetry=telemetry,
        correlation=correlation,
        progress=progress,
        log_feed=log_feed,
        health=HealthProbe(
            fact_store=fact_store,
            config=config.health,
            cache=cache,
            telemetry=telemetry,
        ),
        stats=StatsCalculator(fact_store, lambda: progress.snapshot),
        playlists=PlaylistService(fact_store, lambda: progress.entries),
        workers=workers,
    )


__all__ = ["DashboardRuntime", "build_runtime"]
