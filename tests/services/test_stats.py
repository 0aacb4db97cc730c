"""Tests for :mod:`syncboard.services.stats`."""

from __future__ import annotations

from types import MappingProxyType

import pytest

from syncboard.models import FactCounts, ProgressEntry
from syncboard.services.progress import ProgressSnapshot
from syncboard.services.stats import StatsCalculator, format_eta, remaining_time_label


class _StubStore:
    def __init__(self, counts: FactCounts) -> None:
        self.counts = counts

    def load_counts(self) -> FactCounts:
        return self.counts


def _snapshot(entries: dict[int, ProgressEntry], bandwidth: float | None = None) -> ProgressSnapshot:
    return ProgressSnapshot(entries=MappingProxyType(entries), bandwidth_bps=bandwidth)


def _calculator(counts: FactCounts, snapshot: ProgressSnapshot) -> StatsCalculator:
    return StatsCalculator(_StubStore(counts), lambda: snapshot)  # type: ignore[arg-type]


def test_compute_rollup() -> None:
    counts = FactCounts(total_tracks=10, completed=4, failed=1, table_counts={"search_items": 10})
    snapshot = _snapshot({1: ProgressEntry(10, 100), 2: ProgressEntry(5, 50)})

    stats = _calculator(counts, snapshot).compute()

    assert stats.total_tracks == 10
    assert stats.downloading == 2
    assert stats.pending == 4
    assert stats.completed == 4
    assert stats.failed == 1
    assert stats.global_progress == 40
    assert stats.remaining_time == "Live Sync"
    assert stats.table_counts == {"search_items": 10}


def test_pending_never_negative() -> None:
    counts = FactCounts(total_tracks=2, completed=2, failed=0)
    snapshot = _snapshot({3: ProgressEntry(1, 2), 4: ProgressEntry(1, 2)})

    stats = _calculator(counts, snapshot).compute()

    assert stats.pending == 0
    assert stats.global_progress == 100


def test_empty_store_has_zero_progress() -> None:
    stats = _calculator(FactCounts(total_tracks=0, completed=0, failed=0), _snapshot({})).compute()

    assert stats.global_progress == 0
    assert stats.remaining_time == "Idle"


def test_missing_schema_label() -> None:
    counts = FactCounts(total_tracks=0, completed=0, failed=0, schema_ready=False)

    stats = _calculator(counts, _snapshot({})).compute()

    assert stats.remaining_time == "Schema Missing"


def test_estimate_uses_bandwidth() -> None:
    counts = FactCounts(total_tracks=3, completed=1, failed=0)
    snapshot = _snapshot({1: ProgressEntry(0, 150_000)}, bandwidth=1000.0)

    stats = _calculator(counts, snapshot).compute()

    assert stats.remaining_time == "~2m 30s"


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"total": 5, "pending": 0, "downloading": 0, "remaining_bytes": 0, "bandwidth_bps": None}, "Complete"),
        ({"total": 5, "pending": 2, "downloading": 0, "remaining_bytes": 0, "bandwidth_bps": 10.0}, "Live Sync"),
        ({"total": 5, "pending": 0, "downloading": 1, "remaining_bytes": 100, "bandwidth_bps": 0.0}, "Live Sync"),
    ],
)
def test_remaining_time_label(kwargs: dict[str, object], expected: str) -> None:
    assert remaining_time_label(schema_ready=True, **kwargs) == expected  # type: ignore[arg-type]


def test_format_eta() -> None:
    assert format_eta(59.6) == "~1m 0s"
    assert format_eta(-3) == "~0m 0s"
