"""Per-track endpoints: judged candidates and the optional retry action."""

from __future__ import annotations

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Path

from syncboard.dependencies import get_runtime
from syncboard.errors import DependencyError, FeatureDisabledError, NotFoundError
from syncboard.logging import get_logger
from syncboard.logging_events import log_event
from syncboard.runtime import DashboardRuntime
from syncboard.schemas import CandidateResponse, RetryResponse
from syncboard.services.fact_store import FactStoreError

router = APIRouter(prefix="/tracks", tags=["Tracks"])
logger = get_logger(__name__)


@router.get("/{track_id}/candidates", response_model=List[CandidateResponse])
async def candidates(
    track_id: int = Path(..., ge=1),
    runtime: DashboardRuntime = Depends(get_runtime),
) -> List[CandidateResponse]:
    try:
        items = await asyncio.to_thread(runtime.fact_store.load_candidates, track_id)
    except FactStoreError as exc:
        raise DependencyError("Fact store is unavailable; candidates cannot be loaded.") from exc
    return [
        CandidateResponse(
            id=item.id,
            file_id=item.file_id,
            username=item.username,
            filename=item.filename,
            score=item.score,
            size=item.size,
        )
        for item in items
    ]


@router.post("/{track_id}/retry", response_model=RetryResponse)
async def retry(
    track_id: int = Path(..., ge=1),
    runtime: DashboardRuntime = Depends(get_runtime),
) -> RetryResponse:
    """Delete the track's rejection rows so the engine re-evaluates it."""

    if not runtime.config.features.allow_retry:
        raise FeatureDisabledError("Track retry is disabled (set SYNCBOARD_ALLOW_RETRY=1).")
    try:
        facts = await asyncio.to_thread(runtime.fact_store.load_track, track_id)
        if facts is None:
            raise NotFoundError(f"Track {track_id} not found.")
        cleared = await asyncio.to_thread(runtime.fact_store.clear_rejections, track_id)
    except FactStoreError as exc:
        raise DependencyError("Fact store is unavailable; retry failed.") from exc

    log_event(logger, "api.track.retry", component="api", status="ok", track_id=track_id, cleared=cleared)
    return RetryResponse(track_id=track_id, cleared=cleared)
