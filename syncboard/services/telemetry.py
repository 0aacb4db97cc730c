"""Best-effort client for the engine's tracing backend and the derived log feed."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import logging
import math
from typing import Any

import httpx

from syncboard.config import TelemetryConfig
from syncboard.logging import get_logger
from syncboard.logging_events import log_event
from syncboard.models import LogEntry

logger = get_logger(__name__)

ONLINE = "ONLINE"
OFFLINE = "OFFLINE"

_TRACK_TAGS = ("track.id", "track_id", "trackId")
_PROGRESS_TAGS = ("progress", "track.progress")
_MESSAGE_FIELDS = ("message", "event", "msg")


class TelemetryError(RuntimeError):
    """Raised when the tracing backend cannot be queried."""


@dataclass(slots=True)
class TelemetryClient:
    """HTTPX client for a Jaeger style query API (``/api/services``, ``/api/traces``)."""

    base_url: str
    service: str
    transport: httpx.AsyncBaseTransport | None = None
    timeout_ms: int = 1_500

    @classmethod
    def from_config(
        cls, config: TelemetryConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> "TelemetryClient | None":
        if not config.enabled:
            return None
        return cls(
            base_url=str(config.url),
            service=config.service,
            transport=transport,
            timeout_ms=config.timeout_ms,
        )

    async def probe(self) -> str:
        """Return ``ONLINE`` when the backend answers, otherwise ``OFFLINE``."""

        try:
            await self._get("/api/services")
        except TelemetryError as exc:
            logger.info("Telemetry probe failed: %s", exc)
            return OFFLINE
        return ONLINE

    async def fetch_logs(self, *, limit: int) -> list[LogEntry]:
        payload = await self._get(
            "/api/traces", params={"service": self.service, "limit": max(1, int(limit))}
        )
        traces = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(traces, list):
            raise TelemetryError("Tracing backend returned an unexpected payload")

        entries: list[LogEntry] = []
        for trace in traces:
            if not isinstance(trace, Mapping):
                continue
            for span in trace.get("spans") or ():
                entry = span_to_log_entry(span)
                if entry is not None:
                    entries.append(entry)
        entries.sort(key=lambda item: (item.timestamp, item.id), reverse=True)
        return entries[:limit]

    async def _get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        timeout = max(self.timeout_ms, 100) / 1000
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=httpx.Timeout(timeout),
                headers={"Accept": "application/json"},
                transport=self.transport,
            ) as client:
                response = await client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise TelemetryError("Tracing backend request timed out") from exc
        except httpx.HTTPError as exc:
            raise TelemetryError(f"Tracing backend request failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise TelemetryError(f"Tracing backend responded with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise TelemetryError("Tracing backend returned invalid JSON") from exc


def _tag_map(items: Any) -> dict[str, Any]:
    tags: dict[str, Any] = {}
    if not isinstance(items, Sequence):
        return tags
    for item in items:
        if isinstance(item, Mapping) and isinstance(item.get("key"), str):
            tags[item["key"]] = item.get("value")
    return tags


def _first(mapping: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


def _level_for(tags: Mapping[str, Any]) -> str:
    if tags.get("error") in (True, "true"):
        return "error"
    level = tags.get("level")
    if isinstance(level, str) and level.strip():
        return level.strip().lower()
    return "info"


def _coerce_progress(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(0, min(100, int(round(number))))


def span_to_log_entry(span: Any) -> LogEntry | None:
    """Convert a span into a :class:`LogEntry`; spans without an id are ignored."""

    if not isinstance(span, Mapping):
        return None
    span_id = span.get("spanID") or span.get("spanId")
    if not span_id:
        return None
    tags = _tag_map(span.get("tags"))

    message = str(span.get("operationName") or "span")
    for log in span.get("logs") or ():
        if not isinstance(log, Mapping):
            continue
        text_value = _first(_tag_map(log.get("fields")), _MESSAGE_FIELDS)
        if text_value is not None:
            message = str(text_value)
            break

    try:
        timestamp = int(span.get("startTime") or 0) // 1000
    except (TypeError, ValueError, OverflowError):
        timestamp = 0
    track = _first(tags, _TRACK_TAGS)
    return LogEntry(
        id=str(span_id),
        timestamp=timestamp,
        message=message,
        level=_level_for(tags),
        track_id=str(track) if track is not None else None,
        progress=_coerce_progress(_first(tags, _PROGRESS_TAGS)),
    )


class LogFeed:
    """Newest-first snapshot of recent log entries pulled from telemetry."""

    def __init__(self, client: TelemetryClient | None, *, limit: int = 200) -> None:
        self._client = client
        self._limit = max(1, int(limit))
        self._entries: tuple[LogEntry, ...] = ()
        self._status: str | None = None if client is None else OFFLINE

    @property
    def client(self) -> TelemetryClient | None:
        return self._client

    @property
    def status(self) -> str | None:
        return self._status

    def recent(self, limit: int | None = None) -> list[LogEntry]:
        entries = self._entries
        if limit is None:
            return list(entries)
        return list(entries[: max(0, int(limit))])

    async def refresh(self) -> bool:
        """Pull the latest entries; failures keep the previous feed."""

        if self._client is None:
            return False
        try:
            entries = await self._client.fetch_logs(limit=self._limit)
        except TelemetryError as exc:
            self._status = OFFLINE
            log_event(
                logger,
                "telemetry.poll",
                level=logging.INFO,
                component="telemetry",
                status="error",
                error=str(exc),
            )
            return False
        self._entries = tuple(entries)
        self._status = ONLINE
        return True


__all__ = [
    "LogFeed",
    "OFFLINE",
    "ONLINE",
    "TelemetryClient",
    "TelemetryError",
    "span_to_log_entry",
]
