"""Derive a single lifecycle state and progress value for a track.

Resolution is evaluated in strict precedence order and the first matching rule
wins:

1. a completed download proves success permanently (``COMPLETED``/100),
2. an active progress cache entry shows a transfer in flight
   (``DOWNLOADING``, or ``FINALIZING`` once the entry is flagged complete),
3. a rejection fact marks the track ``FAILED``,
4. judging submissions without further signals mean work has started
   (``FILTERING``),
5. otherwise the engine is still ``SEARCHING``.
"""

from __future__ import annotations

from syncboard.models import ProgressEntry, Resolution, TrackFacts, TrackStatus, TrackView

# The schema cannot tell "being judged" from "approved, waiting for transfer";
# both get this nominal value so the bar visibly moves off zero.
STARTED_PROGRESS = 5


def transfer_progress(entry: ProgressEntry) -> int:
    """Return the 0-100 progress of a cache entry."""

    if entry.completed:
        return 100
    if entry.total_bytes <= 0:
        return 0
    value = round(entry.bytes_downloaded / entry.total_bytes * 100)
    return max(0, min(100, int(value)))


def resolve(facts: TrackFacts, progress_entry: ProgressEntry | None = None) -> Resolution:
    """Resolve ``facts`` and an optional progress entry into a status."""

    if facts.completed:
        return Resolution(TrackStatus.COMPLETED, 100)

    if progress_entry is not None:
        status = TrackStatus.FINALIZING if progress_entry.completed else TrackStatus.DOWNLOADING
        return Resolution(status, transfer_progress(progress_entry))

    if facts.rejected:
        return Resolution(TrackStatus.FAILED, 0)

    if facts.has_submissions:
        return Resolution(TrackStatus.FILTERING, STARTED_PROGRESS)

    return Resolution(TrackStatus.SEARCHING, 0)


def build_track_view(facts: TrackFacts, progress_entry: ProgressEntry | None = None) -> TrackView:
    """Combine resolved status with display fields for the playlist detail."""

    resolution = resolve(facts, progress_entry)
    if resolution.status is TrackStatus.COMPLETED and facts.completed_filename:
        username, filename = facts.completed_username, facts.completed_filename
    else:
        username, filename = facts.best_username, facts.best_filename

    return TrackView(
        id=facts.track_id,
        title=facts.title,
        artist=facts.artist,
        album=facts.album,
        status=resolution.status,
        progress=resolution.progress,
        candidates_count=max(0, facts.candidates_count),
        score=facts.best_score if facts.has_submissions else None,
        reject_reason=facts.reject_reason if resolution.status is TrackStatus.FAILED else None,
        username=username,
        filename=filename,
    )


__all__ = ["STARTED_PROGRESS", "build_track_view", "resolve", "transfer_progress"]
