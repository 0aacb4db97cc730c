"""Submission id to track id lookup shared by the progress poller."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
import logging
from types import MappingProxyType

from syncboard.logging import get_logger
from syncboard.logging_events import log_event

logger = get_logger(__name__)

Loader = Callable[[], Mapping[str, int]]

_EMPTY: Mapping[str, int] = MappingProxyType({})


class CorrelationMap:
    """Immutable snapshot of the judging submission join.

    ``refresh`` rebuilds the map from scratch and publishes it with a single
    reference assignment, so readers see either the old or the new snapshot.
    """

    def __init__(self, loader: Loader) -> None:
        self._loader = loader
        self._snapshot: Mapping[str, int] = _EMPTY
        self._refreshed_at: datetime | None = None

    @property
    def snapshot(self) -> Mapping[str, int]:
        return self._snapshot

    @property
    def refreshed_at(self) -> datetime | None:
        return self._refreshed_at

    def __len__(self) -> int:
        return len(self._snapshot)

    def lookup(self, submission_id: str | int) -> int | None:
        return self._snapshot.get(str(submission_id))

    async def refresh(self) -> bool:
        """Reload the map; on failure keep the previous snapshot and return False."""

        try:
            rows = await asyncio.to_thread(self._loader)
        except Exception as exc:
            log_event(
                logger,
                "correlation.refresh",
                level=logging.WARNING,
                component="correlation",
                status="error",
                error=str(exc),
                entries=len(self._snapshot),
            )
            return False

        fresh = {str(submission_id): int(track_id) for submission_id, track_id in rows.items()}
        self._snapshot = MappingProxyType(fresh)
        self._refreshed_at = datetime.now(UTC)
        log_event(
            logger,
            "correlation.refresh",
            level=logging.DEBUG,
            component="correlation",
            status="ok",
            entries=len(fresh),
        )
        return True


__all__ = ["CorrelationMap"]
