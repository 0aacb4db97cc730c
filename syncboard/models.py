"""Domain models shared by the fact store, resolver and API layers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


class TrackStatus(str, Enum):
    """Lifecycle states a track can be displayed in."""

    SEARCHING = "SEARCHING"
    FILTERING = "FILTERING"
    DOWNLOADING = "DOWNLOADING"
    FINALIZING = "FINALIZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(slots=True, frozen=True)
class TrackFacts:
    """Durable facts recorded by the engine for a single track."""

    track_id: int
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    candidates_count: int = 0
    best_score: float | None = None
    best_username: str | None = None
    best_filename: str | None = None
    completed: bool = False
    completed_username: str | None = None
    completed_filename: str | None = None
    rejected: bool = False
    reject_reason: str | None = None

    @property
    def has_submissions(self) -> bool:
        return self.candidates_count > 0


@dataclass(slots=True, frozen=True)
class ProgressEntry:
    """Byte level transfer progress for a submission in flight."""

    bytes_downloaded: int
    total_bytes: int
    completed: bool = False

    @property
    def fraction(self) -> float:
        if self.completed:
            return 1.0
        if self.total_bytes <= 0:
            return 0.0
        return min(1.0, max(0.0, self.bytes_downloaded / self.total_bytes))

    @property
    def remaining_bytes(self) -> int:
        if self.completed or self.total_bytes <= 0:
            return 0
        return max(0, self.total_bytes - self.bytes_downloaded)


@dataclass(slots=True, frozen=True)
class Resolution:
    status: TrackStatus
    progress: int


@dataclass(slots=True, frozen=True)
class TrackView:
    """Per-track view model served to clients."""

    id: int
    title: str | None
    artist: str | None
    album: str | None
    status: TrackStatus
    progress: int
    candidates_count: int
    score: float | None = None
    reject_reason: str | None = None
    username: str | None = None
    filename: str | None = None


@dataclass(slots=True, frozen=True)
class Candidate:
    """A judged candidate file proposed for a track."""

    id: int
    file_id: int | None
    username: str | None
    filename: str | None
    score: float
    size: int | None = None


@dataclass(slots=True, frozen=True)
class FactCounts:
    """Fleet-wide counters read from the fact store."""

    total_tracks: int
    completed: int
    failed: int
    table_counts: Mapping[str, int] = field(default_factory=dict)
    schema_ready: bool = True


@dataclass(slots=True, frozen=True)
class AggregateStats:
    total_tracks: int
    pending: int
    downloading: int
    completed: int
    failed: int
    global_progress: int
    remaining_time: str
    table_counts: Mapping[str, int] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class HealthSnapshot:
    api: str
    db: str
    tables: Mapping[str, bool]
    cache: str
    telemetry: str | None = None
    error: str | None = None

    @property
    def ready(self) -> bool:
        return self.db == "CONNECTED" and bool(self.tables) and all(self.tables.values())


@dataclass(slots=True, frozen=True)
class NetworkSummary:
    status: str
    user: str
    node: str
    latency: str
    total_bandwidth: str


@dataclass(slots=True, frozen=True)
class LogEntry:
    id: str
    timestamp: int
    message: str
    level: str = "info"
    track_id: str | None = None
    progress: int | None = None


__all__ = [
    "AggregateStats",
    "Candidate",
    "FactCounts",
    "HealthSnapshot",
    "LogEntry",
    "NetworkSummary",
    "ProgressEntry",
    "Resolution",
    "TrackFacts",
    "TrackStatus",
    "TrackView",
]
