"""Playlist views built from track facts and the progress snapshot."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from syncboard.logging import get_logger
from syncboard.models import ProgressEntry, TrackView
from syncboard.services.fact_store import FactStore, FactStoreError
from syncboard.services.status_resolver import build_track_view

logger = get_logger(__name__)

MASTER_PLAYLIST_ID = "all"
MASTER_PLAYLIST_NAME = "Master Library"
DEFAULT_QUALITY = "FLAC / 320k"


@dataclass(slots=True, frozen=True)
class PlaylistSummary:
    id: str
    name: str
    track_count: int


@dataclass(slots=True, frozen=True)
class PlaylistDetail:
    id: str
    name: str
    track_count: int
    quality: str
    last_synced: datetime
    tracks: list[TrackView] = field(default_factory=list)


class PlaylistService:
    """Expose the single ``all`` playlist covering every tracked search item."""

    def __init__(
        self,
        fact_store: FactStore,
        progress_entries: Callable[[], Mapping[int, ProgressEntry]],
    ) -> None:
        self._fact_store = fact_store
        self._progress_entries = progress_entries

    def list_playlists(self) -> list[PlaylistSummary]:
        try:
            total = self._fact_store.load_counts().total_tracks
        except FactStoreError as exc:
            logger.warning("Playlist count unavailable: %s", exc)
            total = 0
        return [PlaylistSummary(MASTER_PLAYLIST_ID, MASTER_PLAYLIST_NAME, total)]

    def get_playlist(self, playlist_id: str) -> PlaylistDetail | None:
        """Return the playlist detail, or ``None`` for an unknown id.

        Fact store failures propagate as :class:`FactStoreError`.
        """

        if playlist_id != MASTER_PLAYLIST_ID:
            return None
        facts = self._fact_store.load_track_facts()
        entries = self._progress_entries()
        tracks = [build_track_view(item, entries.get(item.track_id)) for item in facts]
        return PlaylistDetail(
            id=MASTER_PLAYLIST_ID,
            name=MASTER_PLAYLIST_NAME,
            track_count=len(tracks),
            quality=DEFAULT_QUALITY,
            last_synced=datetime.now(UTC),
            tracks=tracks,
        )


__all__ = [
    "MASTER_PLAYLIST_ID",
    "MASTER_PLAYLIST_NAME",
    "PlaylistDetail",
    "PlaylistService",
    "PlaylistSummary",
]
