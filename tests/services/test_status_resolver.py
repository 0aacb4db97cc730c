"""Tests for :mod:`syncboard.services.status_resolver`."""

from __future__ import annotations

import pytest

from syncboard.models import ProgressEntry, Resolution, TrackFacts, TrackStatus
from syncboard.services.status_resolver import (
    STARTED_PROGRESS,
    build_track_view,
    resolve,
    transfer_progress,
)


def _facts(**overrides: object) -> TrackFacts:
    values: dict[str, object] = {"track_id": 1, "title": "Song", "artist": "Artist", "album": "Album"}
    values.update(overrides)
    return TrackFacts(**values)  # type: ignore[arg-type]


def test_track_without_facts_is_searching() -> None:
    assert resolve(_facts()) == Resolution(TrackStatus.SEARCHING, 0)


def test_submission_without_other_signals_is_filtering() -> None:
    resolution = resolve(_facts(candidates_count=2))

    assert resolution.status is TrackStatus.FILTERING
    assert resolution.progress == STARTED_PROGRESS


def test_rejection_marks_track_failed() -> None:
    resolution = resolve(_facts(candidates_count=1, rejected=True, reject_reason="BITRATE_TOO_LOW"))

    assert resolution.status is TrackStatus.FAILED
    assert resolution.progress == 0


@pytest.mark.parametrize(
    "entry",
    [
        None,
        ProgressEntry(bytes_downloaded=10, total_bytes=100),
        ProgressEntry(bytes_downloaded=100, total_bytes=100, completed=True),
    ],
)
def test_completed_download_overrides_every_other_signal(entry: ProgressEntry | None) -> None:
    facts = _facts(candidates_count=3, completed=True, rejected=True, reject_reason="stale")

    assert resolve(facts, entry) == Resolution(TrackStatus.COMPLETED, 100)


def test_progress_entry_overrides_rejection() -> None:
    facts = _facts(candidates_count=1, rejected=True)

    resolution = resolve(facts, ProgressEntry(bytes_downloaded=50, total_bytes=200))

    assert resolution.status is TrackStatus.DOWNLOADING
    assert resolution.progress == 25


def test_completed_progress_entry_is_finalizing() -> None:
    resolution = resolve(_facts(candidates_count=1), ProgressEntry(90, 100, completed=True))

    assert resolution.status is TrackStatus.FINALIZING
    assert resolution.progress == 100


@pytest.mark.parametrize(
    "downloaded, total, expected",
    [
        (0, 0, 0),
        (10, 0, 0),
        (1, 3, 33),
        (2, 3, 67),
        (500, 200, 100),
        (0, 200, 0),
    ],
)
def test_transfer_progress_is_rounded_and_clamped(downloaded: int, total: int, expected: int) -> None:
    entry = ProgressEntry(bytes_downloaded=downloaded, total_bytes=total)

    progress = transfer_progress(entry)

    assert progress == expected
    assert resolve(_facts(), entry).status is TrackStatus.DOWNLOADING


def test_resolution_is_idempotent() -> None:
    facts = _facts(candidates_count=1, rejected=True)
    entry = ProgressEntry(bytes_downloaded=7, total_bytes=13)

    assert resolve(facts, entry) == resolve(facts, entry)


def test_view_uses_completed_file_and_hides_stale_rejection() -> None:
    facts = _facts(
        candidates_count=2,
        best_score=0.8,
        best_username="best",
        best_filename="best.flac",
        completed=True,
        completed_username="peer",
        completed_filename="done.flac",
        rejected=True,
        reject_reason="old attempt",
    )

    view = build_track_view(facts)

    assert view.status is TrackStatus.COMPLETED
    assert view.progress == 100
    assert (view.username, view.filename) == ("peer", "done.flac")
    assert view.reject_reason is None
    assert view.score == 0.8


def test_view_without_submissions_has_no_score() -> None:
    view = build_track_view(_facts(best_score=0.5))

    assert view.score is None
    assert view.candidates_count == 0


def test_failed_view_carries_reject_reason() -> None:
    view = build_track_view(_facts(candidates_count=1, rejected=True, reject_reason="NO_CANDIDATES"))

    assert view.status is TrackStatus.FAILED
    assert view.reject_reason == "NO_CANDIDATES"
