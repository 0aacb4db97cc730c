"""Fleet-level rollup of the fact store and the progress snapshot."""

from __future__ import annotations

from collections.abc import Callable

from syncboard.models import AggregateStats
from syncboard.services.fact_store import FactStore
from syncboard.services.progress import ProgressSnapshot


SCHEMA_MISSING = "Schema Missing"
IDLE = "Idle"
COMPLETE = "Complete"
LIVE_SYNC = "Live Sync"


def format_eta(seconds: float) -> str:
    """Format a duration as ``~Xm Ys``."""

    total = max(0, int(round(seconds)))
    minutes, remainder = divmod(total, 60)
    return f"~{minutes}m {remainder}s"


def remaining_time_label(
    *,
    schema_ready: bool,
    total: int,
    pending: int,
    downloading: int,
    remaining_bytes: int,
    bandwidth_bps: float | None,
) -> str:
    if not schema_ready:
        return SCHEMA_MISSING
    if total <= 0:
        return IDLE
    if pending == 0 and downloading == 0:
        return COMPLETE
    if remaining_bytes > 0 and bandwidth_bps:
        return format_eta(remaining_bytes / bandwidth_bps)
    return LIVE_SYNC


class StatsCalculator:
    """Compute :class:`AggregateStats` on every call.

    ``downloading`` is the size of the progress snapshot rather than a sum over
    resolved track states, so it may briefly disagree with the playlist view.
    """

    def __init__(
        self,
        fact_store: FactStore,
        progress_snapshot: Callable[[], ProgressSnapshot],
    ) -> None:
        self._fact_store = fact_store
        self._progress_snapshot = progress_snapshot

    def compute(self) -> AggregateStats:
        counts = self._fact_store.load_counts()
        snapshot = self._progress_snapshot()

        total = max(0, counts.total_tracks)
        completed = max(0, counts.completed)
        downloading = len(snapshot.entries)
        pending = max(0, total - completed - downloading)
        global_progress = round(completed / total * 100) if total > 0 else 0

        label = remaining_time_label(
            schema_ready=counts.schema_ready,
            total=total,
            pending=pending,
            downloading=downloading,
            remaining_bytes=snapshot.remaining_bytes,
            bandwidth_bps=snapshot.bandwidth_bps,
        )
        return AggregateStats(
            total_tracks=total,
            pending=pending,
            downloading=downloading,
            completed=completed,
            failed=max(0, counts.failed),
            global_progress=max(0, min(100, int(global_progress))),
            remaining_time=label,
            table_counts=dict(counts.table_counts),
        )


__all__ = ["StatsCalculator", "format_eta", "remaining_time_label"]
