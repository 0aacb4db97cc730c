"""Read-only dashboard endpoints: health, stats, network, playlists and logs."""

from __future__ import annotations

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Query

from syncboard.dependencies import get_runtime
from syncboard.errors import DependencyError, NotFoundError
from syncboard.logging import get_logger
from syncboard.logging_events import log_event
from syncboard.models import TrackView
from syncboard.runtime import DashboardRuntime
from syncboard.schemas import (
    HealthResponse,
    LogEntryResponse,
    NetworkResponse,
    PlaylistDetailResponse,
    PlaylistSummaryResponse,
    StatsResponse,
    TrackResponse,
)
from syncboard.services.fact_store import FactStoreError
from syncboard.services.network import summarise_network

router = APIRouter(tags=["Dashboard"])
logger = get_logger(__name__)


def track_response(view: TrackView) -> TrackResponse:
    return TrackResponse(
        id=view.id,
        title=view.title,
        artist=view.artist,
        album=view.album,
        status=view.status,
        progress=view.progress,
        candidates_count=view.candidates_count,
        score=view.score,
        reject_reason=view.reject_reason,
        username=view.username,
        filename=view.filename,
    )


@router.get("/health", response_model=HealthResponse)
async def health(runtime: DashboardRuntime = Depends(get_runtime)) -> HealthResponse:
    """Report dependency reachability; always answers 200."""

    snapshot = await runtime.health.check()
    return HealthResponse(
        api=snapshot.api,
        db=snapshot.db,
        tables=dict(snapshot.tables),
        cache=snapshot.cache,
        telemetry=snapshot.telemetry,
        error=snapshot.error,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(runtime: DashboardRuntime = Depends(get_runtime)) -> StatsResponse:
    try:
        result = await asyncio.to_thread(runtime.stats.compute)
    except FactStoreError as exc:
        raise DependencyError("Fact store is unavailable; stats cannot be computed.") from exc
    return StatsResponse(
        total_tracks=result.total_tracks,
        pending=result.pending,
        downloading=result.downloading,
        completed=result.completed,
        failed=result.failed,
        global_progress=result.global_progress,
        remaining_time=result.remaining_time,
        table_counts=dict(result.table_counts),
    )


@router.get("/network", response_model=NetworkResponse)
async def network(runtime: DashboardRuntime = Depends(get_runtime)) -> NetworkResponse:
    summary = await summarise_network(
        runtime.cache,
        runtime.progress.snapshot,
        runtime.config.network,
        timeout_s=runtime.config.health.cache_timeout_ms / 1000.0,
    )
    return NetworkResponse(
        status=summary.status,
        user=summary.user,
        node=summary.node,
        latency=summary.latency,
        total_bandwidth=summary.total_bandwidth,
    )


@router.get("/playlists", response_model=List[PlaylistSummaryResponse])
async def list_playlists(
    runtime: DashboardRuntime = Depends(get_runtime),
) -> List[PlaylistSummaryResponse]:
    playlists = await asyncio.to_thread(runtime.playlists.list_playlists)
    return [
        PlaylistSummaryResponse(id=item.id, name=item.name, track_count=item.track_count)
        for item in playlists
    ]


@router.get("/playlists/{playlist_id}", response_model=PlaylistDetailResponse)
async def playlist_detail(
    playlist_id: str,
    runtime: DashboardRuntime = Depends(get_runtime),
) -> PlaylistDetailResponse:
    try:
        detail = await asyncio.to_thread(runtime.playlists.get_playlist, playlist_id)
    except FactStoreError as exc:
        raise DependencyError("Fact store is unavailable; track query failed.") from exc
    if detail is None:
        raise NotFoundError(f"Playlist '{playlist_id}' not found.")

    log_event(
        logger,
        "api.playlist.detail",
        component="api",
        status="ok",
        playlist=detail.id,
        tracks=detail.track_count,
    )
    return PlaylistDetailResponse(
        id=detail.id,
        name=detail.name,
        track_count=detail.track_count,
        quality=detail.quality,
        last_synced=detail.last_synced,
        tracks=[track_response(view) for view in detail.tracks],
    )


@router.get("/logs", response_model=List[LogEntryResponse])
async def logs(
    limit: int = Query(50, ge=1, le=500),
    runtime: DashboardRuntime = Depends(get_runtime),
) -> List[LogEntryResponse]:
    return [
        LogEntryResponse(
            id=entry.id,
            timestamp=entry.timestamp,
            message=entry.message,
            level=entry.level,
            track_id=entry.track_id,
            progress=entry.progress,
        )
        for entry in runtime.log_feed.recent(limit)
    ]
