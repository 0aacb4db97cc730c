"""Connectivity summary for the engine's progress cache link."""

from __future__ import annotations

import asyncio

from syncboard.config import NetworkConfig
from syncboard.logging import get_logger
from syncboard.models import NetworkSummary
from syncboard.services.progress import ProgressSnapshot
from syncboard.services.progress_cache import ProgressCacheAdapter

logger = get_logger(__name__)

CONNECTED = "CONNECTED"
DISCONNECTED = "DISCONNECTED"


def format_bandwidth(bytes_per_second: float | None) -> str:
    value = max(0.0, bytes_per_second or 0.0)
    return f"{value / (1024 * 1024):.1f} MB/s"


async def summarise_network(
    cache: ProgressCacheAdapter | None,
    snapshot: ProgressSnapshot,
    config: NetworkConfig,
    *,
    timeout_s: float = 1.0,
) -> NetworkSummary:
    """Ping the cache and combine the result with the latest bandwidth estimate."""

    status = DISCONNECTED
    latency = "n/a"
    if cache is not None:
        try:
            elapsed_ms = await asyncio.wait_for(cache.ping(), timeout=timeout_s)
        except TimeoutError:
            logger.warning("Progress cache ping timed out after %.0f ms", timeout_s * 1000)
        except Exception as exc:
            logger.warning("Progress cache ping failed: %s", exc)
        else:
            status = CONNECTED
            latency = f"{int(round(elapsed_ms))}ms"

    return NetworkSummary(
        status=status,
        user=config.user,
        node=config.node,
        latency=latency,
        total_bandwidth=format_bandwidth(snapshot.bandwidth_bps if status == CONNECTED else None),
    )


__all__ = ["CONNECTED", "DISCONNECTED", "format_bandwidth", "summarise_network"]
