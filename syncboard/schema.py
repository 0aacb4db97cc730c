"""Schema capability descriptor for the engine's relational fact store.

The synchronisation engine owns its schema; syncboard only reads it. Instead of
querying catalog metadata on every request, the tables and optional columns
this release understands are declared here once. :func:`probe_capabilities`
checks them against a live connection (at health-check time) and the result is
cached by the fact store until the next probe.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Column, Float, ForeignKey, Integer, MetaData, String, Table, Text, inspect
from sqlalchemy.engine import Connection, Engine

SCHEMA_DESCRIPTOR_VERSION = 2

metadata = MetaData()

search_items = Table(
    "search_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("track", String(512)),
    Column("artist", String(512)),
    Column("album", String(512)),
)

downloadable_files = Table(
    "downloadable_files",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(255)),
    Column("filename", String(2048)),
    Column("size", Integer, nullable=True),
)

judge_submissions = Table(
    "judge_submissions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("track", Integer, ForeignKey("search_items.id")),
    Column("query", Integer, ForeignKey("downloadable_files.id")),
    Column("score", Float, nullable=True),
)

downloaded_file = Table(
    "downloaded_file",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("filename", String(2048)),
    Column("track_id", Integer, ForeignKey("search_items.id"), nullable=True),
)

rejected_track = Table(
    "rejected_track",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("track", Integer, ForeignKey("judge_submissions.id")),
    Column("reason", Text, nullable=True),
)

# Tables whose presence gates the client's boot sequence.
REQUIRED_TABLES: tuple[str, ...] = (
    "search_items",
    "judge_submissions",
    "downloaded_file",
    "rejected_track",
)

# Probed but not required: the candidate file table backs scores/filenames and
# the filename based completion link.
AUXILIARY_TABLES: tuple[str, ...] = ("downloadable_files",)

OPTIONAL_COLUMNS: tuple[tuple[str, str], ...] = (
    ("judge_submissions", "score"),
    ("downloadable_files", "size"),
    ("downloaded_file", "track_id"),
    ("rejected_track", "reason"),
)


@dataclass(slots=True, frozen=True)
class SchemaCapabilities:
    """Which parts of the external schema are currently usable."""

    tables: Mapping[str, bool]
    columns: frozenset[tuple[str, str]] = field(default_factory=frozenset)
    version: int = SCHEMA_DESCRIPTOR_VERSION
    probed_at: datetime | None = None

    def has_table(self, name: str) -> bool:
        return bool(self.tables.get(name, False))

    def has_column(self, table_name: str, column_name: str) -> bool:
        return self.has_table(table_name) and (table_name, column_name) in self.columns

    @property
    def required_tables_present(self) -> bool:
        return all(self.has_table(name) for name in REQUIRED_TABLES)

    @property
    def has_candidate_files(self) -> bool:
        return self.has_table("downloadable_files")

    def public_tables(self) -> dict[str, bool]:
        """Return the required table flags reported by the health endpoint."""

        return {name: self.has_table(name) for name in REQUIRED_TABLES}

    @classmethod
    def empty(cls) -> "SchemaCapabilities":
        names: Iterable[str] = (*REQUIRED_TABLES, *AUXILIARY_TABLES)
        return cls(tables={name: False for name in names})

    @classmethod
    def full(cls) -> "SchemaCapabilities":
        names: Iterable[str] = (*REQUIRED_TABLES, *AUXILIARY_TABLES)
        return cls(
            tables={name: True for name in names},
            columns=frozenset(OPTIONAL_COLUMNS),
            probed_at=datetime.now(UTC),
        )


def probe_capabilities(bind: Engine | Connection) -> SchemaCapabilities:
    """Inspect ``bind`` and report the declared tables and optional columns."""

    inspector = inspect(bind)
    existing = {name.lower() for name in inspector.get_table_names()}
    tables: dict[str, bool] = {}
    for name in (*REQUIRED_TABLES, *AUXILIARY_TABLES):
        tables[name] = name in existing

    columns: set[tuple[str, str]] = set()
    for table_name, column_name in OPTIONAL_COLUMNS:
        if not tables.get(table_name):
            continue
        present = {column["name"].lower() for column in inspector.get_columns(table_name)}
        if column_name in present:
            columns.add((table_name, column_name))

    return SchemaCapabilities(
        tables=tables,
        columns=frozenset(columns),
        probed_at=datetime.now(UTC),
    )


__all__ = [
    "AUXILIARY_TABLES",
    "OPTIONAL_COLUMNS",
    "REQUIRED_TABLES",
    "SCHEMA_DESCRIPTOR_VERSION",
    "SchemaCapabilities",
    "downloadable_files",
    "downloaded_file",
    "judge_submissions",
    "metadata",
    "probe_capabilities",
    "rejected_track",
    "search_items",
]
