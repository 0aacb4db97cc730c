"""Read-only access to the engine's Redis progress cache."""

from __future__ import annotations

import time
from typing import Any

from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError

from syncboard.config import ProgressCacheConfig
from syncboard.logging import get_logger

logger = get_logger(__name__)


class ProgressCacheError(RuntimeError):
    """Raised when the progress cache cannot be read."""


class ProgressCacheAdapter:
    """Scan ``<prefix><submission id>`` keys and return their raw values.

    The engine owns the keys and their expiry; this adapter never writes.
    """

    def __init__(
        self,
        client: Any,
        *,
        key_prefix: str = "progress:",
        scan_count: int = 500,
    ) -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._scan_count = max(1, int(scan_count))

    @classmethod
    def from_config(cls, config: ProgressCacheConfig) -> "ProgressCacheAdapter | None":
        if not config.enabled:
            return None
        client = redis_asyncio.from_url(config.url, decode_responses=True)
        return cls(client, key_prefix=config.key_prefix, scan_count=config.scan_count)

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    async def ping(self) -> float:
        """Ping the cache and return the round trip in milliseconds."""

        started = time.perf_counter()
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            raise ProgressCacheError(f"Progress cache ping failed: {exc}") from exc
        return (time.perf_counter() - started) * 1000.0

    async def scan_entries(self) -> dict[str, Any]:
        """Return ``{submission_id: raw value}`` for every progress key."""

        pattern = f"{self._key_prefix}*"
        try:
            keys = [
                _as_text(key)
                async for key in self._client.scan_iter(match=pattern, count=self._scan_count)
            ]
            if not keys:
                return {}
            values = await self._client.mget(keys)
        except (RedisError, OSError) as exc:
            raise ProgressCacheError(f"Progress cache scan failed: {exc}") from exc

        entries: dict[str, Any] = {}
        for key, value in zip(keys, values):
            if value is None:
                # Key expired between SCAN and MGET.
                continue
            submission_id = key[len(self._key_prefix) :]
            if submission_id:
                entries[submission_id] = value
        return entries

    async def close(self) -> None:
        close = getattr(self._client, "aclose", None) or getattr(self._client, "close", None)
        if close is None:
            return
        try:
            await close()
        except (RedisError, OSError) as exc:
            logger.debug("Progress cache close failed: %s", exc)


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["ProgressCacheAdapter", "ProgressCacheError"]
