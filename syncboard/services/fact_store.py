"""Read-only adapter over the engine's relational fact store."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from syncboard.db import SessionFactory, session_scope
from syncboard.logging import get_logger
from syncboard.models import Candidate, FactCounts, TrackFacts
from syncboard.schema import (
    AUXILIARY_TABLES,
    REQUIRED_TABLES,
    SchemaCapabilities,
    downloadable_files,
    downloaded_file,
    judge_submissions,
    probe_capabilities,
    rejected_track,
    search_items,
)

logger = get_logger(__name__)

DEFAULT_CAPABILITY_TTL = timedelta(seconds=60)


class FactStoreError(RuntimeError):
    """Raised when a fact store query cannot be completed."""

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(message)
        self.operation = operation


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text_value = str(value).strip()
    return text_value or None


def _clamp_score(value: Any) -> float | None:
    if value is None:
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(1.0, score))


class FactStore:
    """Query track, submission, download and rejection facts."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory = session_scope,
        playlist_limit: int = 100,
        capability_ttl: timedelta = DEFAULT_CAPABILITY_TTL,
    ) -> None:
        self._session_factory = session_factory
        self._playlist_limit = max(1, int(playlist_limit))
        self._capability_ttl = capability_ttl
        self._capabilities: SchemaCapabilities | None = None

    @property
    def playlist_limit(self) -> int:
        return self._playlist_limit

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.warning("Fact store %s failed: %s", operation, exc)
            raise FactStoreError(f"Fact store {operation} failed: {exc}", operation=operation) from exc

    def ping(self) -> None:
        """Run a lightweight query, raising :class:`FactStoreError` on failure."""

        with self._session("ping") as session:
            session.execute(text("SELECT 1"))

    def probe_schema(self) -> SchemaCapabilities:
        """Re-check declared tables and optional columns and cache the result."""

        with self._session("schema probe") as session:
            capabilities = probe_capabilities(session.connection())
        self._capabilities = capabilities
        missing = [name for name in (*REQUIRED_TABLES, *AUXILIARY_TABLES) if not capabilities.has_table(name)]
        if missing:
            logger.info("Fact store schema incomplete", extra={"event": "schema.probe", "missing": missing})
        return capabilities

    def capabilities(self) -> SchemaCapabilities:
        """Return cached capabilities, probing again once the cache has aged out."""

        cached = self._capabilities
        if cached is not None and cached.probed_at is not None:
            if datetime.now(UTC) - cached.probed_at < self._capability_ttl:
                return cached
        return self.probe_schema()

    def set_capabilities(self, capabilities: SchemaCapabilities | None) -> None:
        self._capabilities = capabilities

    # Track facts -----------------------------------------------------------

    def load_track_facts(self, *, limit: int | None = None) -> list[TrackFacts]:
        """Return facts for the newest tracks, newest first."""

        caps = self.capabilities()
        if not caps.has_table("search_items"):
            return []
        resolved_limit = self._playlist_limit if limit is None else max(1, int(limit))

        with self._session("track facts") as session:
            rows = session.execute(
                select(
                    search_items.c.id,
                    search_items.c.track,
                    search_items.c.artist,
                    search_items.c.album,
                )
                .order_by(search_items.c.id.desc())
                .limit(resolved_limit)
            ).all()
            return self._assemble_facts(session, caps, rows)

    def load_track(self, track_id: int) -> TrackFacts | None:
        caps = self.capabilities()
        if not caps.has_table("search_items"):
            return None
        with self._session("track lookup") as session:
            row = session.execute(
                select(
                    search_items.c.id,
                    search_items.c.track,
                    search_items.c.artist,
                    search_items.c.album,
                ).where(search_items.c.id == track_id)
            ).first()
            if row is None:
                return None
            facts = self._assemble_facts(session, caps, [row])
        return facts[0]

    def _assemble_facts(
        self, session: Session, caps: SchemaCapabilities, rows: Sequence[Any]
    ) -> list[TrackFacts]:
        track_ids = [int(row.id) for row in rows]
        if not track_ids:
            return []
        counts = self._submission_counts(session, caps, track_ids)
        best = self._best_candidates(session, caps, track_ids)
        completed = self._completed_downloads(session, caps, track_ids)
        rejections = self._latest_rejections(session, caps, track_ids)

        facts: list[TrackFacts] = []
        for row in rows:
            track_id = int(row.id)
            best_score, best_username, best_filename = best.get(track_id, (None, None, None))
            completion = completed.get(track_id)
            facts.append(
                TrackFacts(
                    track_id=track_id,
                    title=_clean_text(row.track),
                    artist=_clean_text(row.artist),
                    album=_clean_text(row.album),
                    candidates_count=counts.get(track_id, 0),
                    best_score=best_score,
                    best_username=best_username,
                    best_filename=best_filename,
                    completed=completion is not None,
                    completed_username=completion[0] if completion else None,
                    completed_filename=completion[1] if completion else None,
                    rejected=track_id in rejections,
                    reject_reason=rejections.get(track_id),
                )
            )
        return facts

    @staticmethod
    def _restrict(statement: Select, column: Any, track_ids: Sequence[int] | None) -> Select:
        if track_ids is None:
            return statement
        return statement.where(column.in_(list(track_ids)))

    def _submission_counts(
        self, session: Session, caps: SchemaCapabilities, track_ids: Sequence[int]
    ) -> dict[int, int]:
        if not caps.has_table("judge_submissions"):
            return {}
        statement = self._restrict(
            select(judge_submissions.c.track, func.count(judge_submissions.c.id)),
            judge_submissions.c.track,
            track_ids,
        ).group_by(judge_submissions.c.track)
        return {int(track): int(count) for track, count in session.execute(statement) if track is not None}

    def _best_candidates(
        self, session: Session, caps: SchemaCapabilities, track_ids: Sequence[int]
    ) -> dict[int, tuple[float | None, str | None, str | None]]:
        if not caps.has_table("judge_submissions"):
            return {}
        has_score = caps.has_column("judge_submissions", "score")
        statement = select(judge_submissions.c.track, judge_submissions.c.id)
        if has_score:
            statement = statement.add_columns(judge_submissions.c.score.label("score"))
        if caps.has_candidate_files:
            statement = statement.add_columns(
                downloadable_files.c.username.label("username"),
                downloadable_files.c.filename.label("filename"),
            ).outerjoin(downloadable_files, downloadable_files.c.id == judge_submissions.c.query)
        statement = self._restrict(statement, judge_submissions.c.track, track_ids)
        if has_score:
            statement = statement.order_by(
                judge_submissions.c.score.is_(None), judge_submissions.c.score.desc()
            )
        statement = statement.order_by(judge_submissions.c.id)

        best: dict[int, tuple[float | None, str | None, str | None]] = {}
        for row in session.execute(statement):
            mapping = row._mapping
            track_id = mapping["track"]
            if track_id is None or int(track_id) in best:
                continue
            best[int(track_id)] = (
                _clamp_score(mapping.get("score")),
                _clean_text(mapping.get("username")),
                _clean_text(mapping.get("filename")),
            )
        return best

    def _completed_downloads(
        self, session: Session, caps: SchemaCapabilities, track_ids: Sequence[int] | None
    ) -> dict[int, tuple[str | None, str | None]]:
        """Map track ids to the (username, filename) of a completed download."""

        if not caps.has_table("downloaded_file"):
            return {}
        completed: dict[int, tuple[str | None, str | None]] = {}

        if caps.has_table("judge_submissions") and caps.has_candidate_files:
            statement = (
                select(
                    judge_submissions.c.track,
                    downloadable_files.c.username,
                    downloadable_files.c.filename,
                )
                .join(downloadable_files, downloadable_files.c.id == judge_submissions.c.query)
                .join(downloaded_file, downloaded_file.c.filename == downloadable_files.c.filename)
            )
            statement = self._restrict(statement, judge_submissions.c.track, track_ids)
            for track, username, filename in session.execute(statement):
                if track is None:
                    continue
                completed.setdefault(int(track), (_clean_text(username), _clean_text(filename)))

        if caps.has_column("downloaded_file", "track_id"):
            statement = select(downloaded_file.c.track_id, downloaded_file.c.filename).where(
                downloaded_file.c.track_id.is_not(None)
            )
            statement = self._restrict(statement, downloaded_file.c.track_id, track_ids)
            for track, filename in session.execute(statement):
                completed.setdefault(int(track), (None, _clean_text(filename)))

        return completed

    def _latest_rejections(
        self, session: Session, caps: SchemaCapabilities, track_ids: Sequence[int] | None
    ) -> dict[int, str | None]:
        """Map track ids to the reason of their most recent rejection row."""

        if not (caps.has_table("rejected_track") and caps.has_table("judge_submissions")):
            return {}
        statement = select(judge_submissions.c.track, rejected_track.c.id).join(
            judge_submissions, rejected_track.c.track == judge_submissions.c.id
        )
        if caps.has_column("rejected_track", "reason"):
            statement = statement.add_columns(rejected_track.c.reason.label("reason"))
        statement = self._restrict(statement, judge_submissions.c.track, track_ids)
        statement = statement.order_by(rejected_track.c.id.desc())

        latest: dict[int, str | None] = {}
        for row in session.execute(statement):
            mapping = row._mapping
            track_id = mapping["track"]
            if track_id is None or int(track_id) in latest:
                continue
            latest[int(track_id)] = _clean_text(mapping.get("reason"))
        return latest

    # Correlation ----------------------------------------------------------

    def load_correlations(self) -> dict[str, int]:
        """Return the submission id → track id join used by the progress cache."""

        caps = self.capabilities()
        if not caps.has_table("judge_submissions"):
            return {}
        with self._session("correlation load") as session:
            rows = session.execute(select(judge_submissions.c.id, judge_submissions.c.track)).all()
        return {str(submission_id): int(track) for submission_id, track in rows if track is not None}

    # Aggregates -----------------------------------------------------------

    def load_counts(self) -> FactCounts:
        """Return fleet-wide totals and raw per-table row counts."""

        caps = self.capabilities()
        with self._session("counts") as session:
            table_counts = self._table_counts(session, caps)
            if not caps.has_table("search_items"):
                return FactCounts(
                    total_tracks=0,
                    completed=0,
                    failed=0,
                    table_counts=table_counts,
                    schema_ready=False,
                )
            completed_ids = set(self._completed_downloads(session, caps, None))
            rejected_ids = set(self._latest_rejections(session, caps, None))
            known_ids = set(
                int(value)
                for value in session.execute(select(search_items.c.id)).scalars()
                if value is not None
            )

        total = table_counts.get("search_items", len(known_ids))
        completed = len(completed_ids & known_ids)
        failed = len((rejected_ids - completed_ids) & known_ids)
        return FactCounts(
            total_tracks=total,
            completed=completed,
            failed=failed,
            table_counts=table_counts,
        )

    @staticmethod
    def _table_counts(session: Session, caps: SchemaCapabilities) -> dict[str, int]:
        tables = {
            "search_items": search_items,
            "judge_submissions": judge_submissions,
            "downloadable_files": downloadable_files,
            "downloaded_file": downloaded_file,
            "rejected_track": rejected_track,
        }
        counts: dict[str, int] = {}
        for name, table in tables.items():
            if not caps.has_table(name):
                continue
            counts[name] = int(session.execute(select(func.count()).select_from(table)).scalar_one())
        return counts

    # Candidates -----------------------------------------------------------

    def load_candidates(self, track_id: int) -> list[Candidate]:
        """Return judged candidates for ``track_id`` ordered by descending score."""

        caps = self.capabilities()
        if not caps.has_table("judge_submissions"):
            return []
        has_score = caps.has_column("judge_submissions", "score")
        statement = select(judge_submissions.c.id, judge_submissions.c.query.label("file_id"))
        if has_score:
            statement = statement.add_columns(judge_submissions.c.score.label("score"))
        if caps.has_candidate_files:
            statement = statement.add_columns(
                downloadable_files.c.username.label("username"),
                downloadable_files.c.filename.label("filename"),
            )
            if caps.has_column("downloadable_files", "size"):
                statement = statement.add_columns(downloadable_files.c.size.label("size"))
            statement = statement.outerjoin(
                downloadable_files, downloadable_files.c.id == judge_submissions.c.query
            )
        statement = statement.where(judge_submissions.c.track == track_id)

        with self._session("candidate load") as session:
            rows = [row._mapping for row in session.execute(statement)]

        candidates = [
            Candidate(
                id=int(row["id"]),
                file_id=int(row["file_id"]) if row["file_id"] is not None else None,
                username=_clean_text(row.get("username")),
                filename=_clean_text(row.get("filename")),
                score=_clamp_score(row.get("score")) or 0.0,
                size=int(row["size"]) if row.get("size") is not None else None,
            )
            for row in rows
        ]
        candidates.sort(key=lambda candidate: (-candidate.score, candidate.id))
        return candidates

    # Retry ----------------------------------------------------------------

    def clear_rejections(self, track_id: int) -> int:
        """Delete rejection rows of ``track_id`` so it is re-evaluated."""

        caps = self.capabilities()
        if not (caps.has_table("rejected_track") and caps.has_table("judge_submissions")):
            return 0
        submission_ids = select(judge_submissions.c.id).where(judge_submissions.c.track == track_id)
        with self._session("rejection clear") as session:
            result = session.execute(
                delete(rejected_track).where(rejected_track.c.track.in_(submission_ids))
            )
        return int(result.rowcount or 0)


__all__ = ["FactStore", "FactStoreError"]
