"""Health and diagnostics checks for the dashboard dependencies."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from syncboard.config import HealthConfig
from syncboard.logging import get_logger
from syncboard.models import HealthSnapshot
from syncboard.schema import REQUIRED_TABLES, SchemaCapabilities
from syncboard.services.fact_store import FactStore
from syncboard.services.progress_cache import ProgressCacheAdapter
from syncboard.services.telemetry import OFFLINE, TelemetryClient

logger = get_logger(__name__)

API_ONLINE = "ONLINE"
DB_CONNECTED = "CONNECTED"
DB_DISCONNECTED = "DISCONNECTED"
CACHE_CONNECTED = "CONNECTED"
CACHE_DISCONNECTED = "DISCONNECTED"
CACHE_DISABLED = "DISABLED"


@dataclass(frozen=True)
class DatabaseStatus:
    status: str
    tables: dict[str, bool]
    error: str | None = None


class HealthProbe:
    """Execute independent dependency checks; :meth:`check` never raises."""

    def __init__(
        self,
        *,
        fact_store: FactStore,
        config: HealthConfig,
        cache: ProgressCacheAdapter | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._fact_store = fact_store
        self._config = config
        self._cache = cache
        self._telemetry = telemetry

    async def check(self) -> HealthSnapshot:
        db_task = asyncio.create_task(self._probe_database())
        cache_task = asyncio.create_task(self._probe_cache())
        telemetry_task = asyncio.create_task(self._probe_telemetry())

        database = await db_task
        cache_status = await cache_task
        telemetry_status = await telemetry_task

        return HealthSnapshot(
            api=API_ONLINE,
            db=database.status,
            tables=database.tables,
            cache=cache_status,
            telemetry=telemetry_status,
            error=database.error,
        )

    async def _probe_database(self) -> DatabaseStatus:
        timeout = max(0.1, self._config.db_timeout_ms / 1000.0)
        missing = {name: False for name in REQUIRED_TABLES}
        try:
            await asyncio.wait_for(asyncio.to_thread(self._fact_store.ping), timeout=timeout)
        except TimeoutError:
            logger.warning("Fact store ping timed out after %.0f ms", timeout * 1000)
            return DatabaseStatus(DB_DISCONNECTED, missing, "Fact store did not respond in time.")
        except Exception as exc:
            logger.warning("Fact store ping failed: %s", exc)
            return DatabaseStatus(DB_DISCONNECTED, missing, str(exc))

        try:
            capabilities: SchemaCapabilities = await asyncio.wait_for(
                asyncio.to_thread(self._fact_store.probe_schema), timeout=timeout
            )
        except TimeoutError:
            logger.warning("Schema probe timed out after %.0f ms", timeout * 1000)
            return DatabaseStatus(DB_CONNECTED, missing, "Schema probe did not respond in time.")
        except Exception as exc:
            logger.warning("Schema probe failed: %s", exc)
            return DatabaseStatus(DB_CONNECTED, missing, str(exc))

        tables = capabilities.public_tables()
        absent = [name for name, present in tables.items() if not present]
        error = f"Missing tables: {', '.join(absent)}" if absent else None
        return DatabaseStatus(DB_CONNECTED, tables, error)

    async def _probe_cache(self) -> str:
        if self._cache is None:
            return CACHE_DISABLED
        timeout = max(0.1, self._config.cache_timeout_ms / 1000.0)
        try:
            await asyncio.wait_for(self._cache.ping(), timeout=timeout)
        except TimeoutError:
            logger.warning("Progress cache ping timed out after %.0f ms", timeout * 1000)
            return CACHE_DISCONNECTED
        except Exception as exc:
            logger.warning("Progress cache ping failed: %s", exc)
            return CACHE_DISCONNECTED
        return CACHE_CONNECTED

    async def _probe_telemetry(self) -> str | None:
        if self._telemetry is None:
            return None
        timeout = max(0.1, self._telemetry.timeout_ms / 1000.0)
        try:
            return await asyncio.wait_for(self._telemetry.probe(), timeout=timeout)
        except TimeoutError:
            return OFFLINE
        except Exception as exc:
            logger.info("Telemetry probe failed: %s", exc)
            return OFFLINE


__all__ = [
    "API_ONLINE",
    "CACHE_CONNECTED",
    "CACHE_DISABLED",
    "CACHE_DISCONNECTED",
    "DB_CONNECTED",
    "DB_DISCONNECTED",
    "HealthProbe",
]
