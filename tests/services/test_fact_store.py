"""Tests for :mod:`syncboard.services.fact_store` against a SQLite fact store."""

from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy.orm import sessionmaker

from syncboard.schema import (
    downloadable_files,
    downloaded_file,
    judge_submissions,
    rejected_track,
    search_items,
)
from syncboard.services.fact_store import FactStore, FactStoreError


@pytest.fixture()
def store(session_factory) -> FactStore:
    return FactStore(session_factory=session_factory)


@pytest.fixture()
def seeded(insert) -> None:
    insert(
        search_items,
        {"id": 1, "track": "Intro", "artist": "Band", "album": "LP"},
        {"id": 2, "track": "Single", "artist": "Band", "album": "LP"},
        {"id": 3, "track": "Outro", "artist": "Band", "album": "LP"},
    )
    insert(
        downloadable_files,
        {"id": 10, "username": "alice", "filename": "intro.flac", "size": 1000},
        {"id": 11, "username": "bob", "filename": "intro_low.mp3", "size": 300},
        {"id": 12, "username": "carol", "filename": "single.flac", "size": 2000},
    )
    insert(
        judge_submissions,
        {"id": 100, "track": 1, "query": 10, "score": 0.95},
        {"id": 101, "track": 1, "query": 11, "score": 0.4},
        {"id": 102, "track": 2, "query": 12, "score": 0.7},
    )
    insert(downloaded_file, {"id": 1000, "filename": "intro.flac"})
    insert(
        rejected_track,
        {"id": 500, "track": 101, "reason": "BITRATE_TOO_LOW"},
        {"id": 501, "track": 102, "reason": "OLD"},
        {"id": 502, "track": 102, "reason": "DURATION_MISMATCH"},
    )


def test_load_track_facts_returns_newest_first(store: FactStore, seeded: None) -> None:
    facts = store.load_track_facts()

    assert [item.track_id for item in facts] == [3, 2, 1]


def test_track_facts_link_completion_through_candidate_file(store: FactStore, seeded: None) -> None:
    facts = {item.track_id: item for item in store.load_track_facts()}

    first = facts[1]
    assert first.completed is True
    assert (first.completed_username, first.completed_filename) == ("alice", "intro.flac")
    assert first.candidates_count == 2
    assert first.best_score == pytest.approx(0.95)
    assert first.best_username == "alice"


def test_track_facts_use_latest_rejection_reason(store: FactStore, seeded: None) -> None:
    second = store.load_track(2)

    assert second is not None
    assert second.rejected is True
    assert second.completed is False
    assert second.reject_reason == "DURATION_MISMATCH"


def test_track_without_submissions(store: FactStore, seeded: None) -> None:
    third = store.load_track(3)

    assert third is not None
    assert third.candidates_count == 0
    assert third.best_score is None
    assert third.rejected is False


def test_load_track_unknown_id_returns_none(store: FactStore, seeded: None) -> None:
    assert store.load_track(999) is None


def test_completion_via_track_id_column(store: FactStore, insert) -> None:
    insert(search_items, {"id": 7, "track": "Direct", "artist": "A", "album": "B"})
    insert(downloaded_file, {"id": 1, "filename": "direct.flac", "track_id": 7})

    facts = store.load_track(7)

    assert facts is not None
    assert facts.completed is True
    assert facts.completed_filename == "direct.flac"


def test_load_correlations(store: FactStore, seeded: None) -> None:
    assert store.load_correlations() == {"100": 1, "101": 1, "102": 2}


def test_load_counts_excludes_completed_from_failed(store: FactStore, seeded: None) -> None:
    counts = store.load_counts()

    assert counts.total_tracks == 3
    assert counts.completed == 1
    assert counts.failed == 1
    assert counts.schema_ready is True
    assert counts.table_counts["judge_submissions"] == 3
    assert counts.table_counts["rejected_track"] == 3


def test_load_candidates_orders_by_score(store: FactStore, seeded: None) -> None:
    candidates = store.load_candidates(1)

    assert [item.id for item in candidates] == [100, 101]
    assert candidates[0].username == "alice"
    assert candidates[0].size == 1000
    assert candidates[1].score == pytest.approx(0.4)


def test_clear_rejections_removes_rows_for_track(store: FactStore, seeded: None) -> None:
    cleared = store.clear_rejections(2)

    assert cleared == 2
    second = store.load_track(2)
    assert second is not None and second.rejected is False
    first = store.load_track(1)
    assert first is not None and first.rejected is True


def test_missing_schema_degrades_to_empty(empty_engine) -> None:
    factory = sessionmaker(bind=empty_engine)

    @contextmanager
    def scope():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    store = FactStore(session_factory=scope)

    assert store.load_track_facts() == []
    assert store.load_correlations() == {}
    assert store.load_candidates(1) == []
    counts = store.load_counts()
    assert counts.schema_ready is False
    assert counts.total_tracks == 0
    assert store.capabilities().required_tables_present is False


def test_unreachable_store_raises(store: FactStore, session_factory, seeded: None) -> None:
    store.probe_schema()
    session_factory.offline = True

    with pytest.raises(FactStoreError):
        store.load_track_facts()
    with pytest.raises(FactStoreError):
        store.ping()
