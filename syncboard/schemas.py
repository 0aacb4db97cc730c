"""Pydantic schemas for the dashboard API responses."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from syncboard.models import TrackStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HealthResponse(CamelModel):
    api: str
    db: str
    tables: Dict[str, bool] = Field(default_factory=dict)
    cache: str
    telemetry: Optional[str] = None
    error: Optional[str] = None


class StatsResponse(CamelModel):
    total_tracks: int
    pending: int
    downloading: int
    completed: int
    failed: int
    global_progress: int
    remaining_time: str
    table_counts: Dict[str, int] = Field(default_factory=dict)


class NetworkResponse(CamelModel):
    status: str
    user: str
    node: str
    latency: str
    total_bandwidth: str


class TrackResponse(CamelModel):
    id: int
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    status: TrackStatus
    progress: int = Field(ge=0, le=100)
    candidates_count: int = Field(ge=0)
    score: Optional[float] = None
    reject_reason: Optional[str] = None
    username: Optional[str] = None
    filename: Optional[str] = None


class PlaylistSummaryResponse(CamelModel):
    id: str
    name: str
    track_count: int


class PlaylistDetailResponse(CamelModel):
    id: str
    name: str
    track_count: int
    quality: str
    last_synced: datetime
    tracks: List[TrackResponse] = Field(default_factory=list)


class CandidateResponse(CamelModel):
    id: int
    file_id: Optional[int] = None
    username: Optional[str] = None
    filename: Optional[str] = None
    score: float
    size: Optional[int] = None


class LogEntryResponse(CamelModel):
    id: str
    timestamp: int
    message: str
    level: str
    track_id: Optional[str] = None
    progress: Optional[int] = None


class RetryResponse(CamelModel):
    ok: bool = True
    track_id: int
    cleared: int


__all__ = [
    "CandidateResponse",
    "HealthResponse",
    "LogEntryResponse",
    "NetworkResponse",
    "PlaylistDetailResponse",
    "PlaylistSummaryResponse",
    "RetryResponse",
    "StatsResponse",
    "TrackResponse",
]
