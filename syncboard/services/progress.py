"""Resolve progress cache entries into a per-track snapshot."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import json
import logging
import math
import time
from types import MappingProxyType
from typing import Any

from syncboard.logging import get_logger
from syncboard.logging_events import log_event
from syncboard.models import ProgressEntry
from syncboard.services.correlation import CorrelationMap
from syncboard.services.progress_cache import ProgressCacheAdapter

logger = get_logger(__name__)

_FIELD_ALIASES: Mapping[str, tuple[str, ...]] = {
    "bytes_downloaded": ("bytes_downloaded", "bytesDownloaded"),
    "total_bytes": ("total_bytes", "totalBytes"),
    "completed": ("completed",),
}


@dataclass(slots=True, frozen=True)
class ProgressSnapshot:
    """Result of one poll: per-track entries plus a throughput estimate."""

    entries: Mapping[int, ProgressEntry] = field(default_factory=lambda: MappingProxyType({}))
    bandwidth_bps: float | None = None
    polled_at: float | None = None

    @property
    def remaining_bytes(self) -> int:
        return sum(entry.remaining_bytes for entry in self.entries.values())


def _pick(payload: Mapping[str, Any], name: str) -> Any:
    for alias in _FIELD_ALIASES[name]:
        if alias in payload:
            return payload[alias]
    raise ValueError(f"missing field '{name}'")


def _as_byte_count(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field '{name}' must be numeric")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"field '{name}' must be finite")
    if value < 0:
        raise ValueError(f"field '{name}' must not be negative")
    return int(value)


def parse_progress_entry(raw: Any) -> ProgressEntry:
    """Parse a cached JSON payload, raising ``ValueError`` when it is malformed."""

    payload = raw
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, Mapping):
        raise ValueError("progress entry must be an object")

    completed = payload.get("completed", False)
    if not isinstance(completed, bool):
        raise ValueError("field 'completed' must be a boolean")
    return ProgressEntry(
        bytes_downloaded=_as_byte_count(_pick(payload, "bytes_downloaded"), "bytes_downloaded"),
        total_bytes=_as_byte_count(_pick(payload, "total_bytes"), "total_bytes"),
        completed=completed,
    )


def _prefer(current: ProgressEntry, candidate: ProgressEntry) -> ProgressEntry:
    """Pick the entry shown when several submissions of one track are in flight."""

    if current.completed != candidate.completed:
        return current if not current.completed else candidate
    return candidate if candidate.fraction > current.fraction else current


class ProgressPoller:
    """Poll the progress cache and publish an immutable ``trackId → entry`` map."""

    def __init__(
        self,
        cache: ProgressCacheAdapter | None,
        correlation: CorrelationMap,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache = cache
        self._correlation = correlation
        self._clock = clock
        self._snapshot = ProgressSnapshot()
        self._previous_bytes: dict[str, int] = {}
        self._previous_at: float | None = None

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    @property
    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    @property
    def entries(self) -> Mapping[int, ProgressEntry]:
        return self._snapshot.entries

    def entry_for(self, track_id: int) -> ProgressEntry | None:
        return self._snapshot.entries.get(track_id)

    async def poll(self) -> Mapping[int, ProgressEntry]:
        """Refresh the snapshot; a failed read keeps the previous one."""

        if self._cache is None:
            return self._snapshot.entries

        try:
            raw_entries = await self._cache.scan_entries()
        except Exception as exc:
            log_event(
                logger,
                "progress.poll",
                level=logging.WARNING,
                component="progress",
                status="error",
                error=str(exc),
            )
            return self._snapshot.entries

        now = self._clock()
        resolved: dict[int, ProgressEntry] = {}
        submission_bytes: dict[str, int] = {}
        dropped = 0
        for submission_id, raw in raw_entries.items():
            try:
                entry = parse_progress_entry(raw)
            except ValueError as exc:
                logger.warning("Skipping malformed progress entry %s: %s", submission_id, exc)
                continue
            submission_bytes[submission_id] = entry.bytes_downloaded
            track_id = self._correlation.lookup(submission_id)
            if track_id is None:
                dropped += 1
                continue
            existing = resolved.get(track_id)
            resolved[track_id] = entry if existing is None else _prefer(existing, entry)

        bandwidth = self._estimate_bandwidth(submission_bytes, now)
        self._snapshot = ProgressSnapshot(
            entries=MappingProxyType(resolved),
            bandwidth_bps=bandwidth,
            polled_at=now,
        )
        log_event(
            logger,
            "progress.poll",
            level=logging.DEBUG,
            component="progress",
            status="ok",
            entries=len(resolved),
            dropped=dropped,
        )
        return self._snapshot.entries

    def _estimate_bandwidth(self, submission_bytes: dict[str, int], now: float) -> float | None:
        previous_bytes, previous_at = self._previous_bytes, self._previous_at
        self._previous_bytes = submission_bytes
        self._previous_at = now
        if previous_at is None or now <= previous_at:
            return self._snapshot.bandwidth_bps

        transferred = 0
        for submission_id, current in submission_bytes.items():
            before = previous_bytes.get(submission_id)
            if before is not None and current > before:
                transferred += current - before
        return transferred / (now - previous_at)


__all__ = ["ProgressPoller", "ProgressSnapshot", "parse_progress_entry"]
