"""SQLite-backed store for notes, tags, aliases and the tag graph.

Implements both :class:`~notegraph.storage.base.GraphStoreProtocol` and
:class:`~notegraph.storage.base.NoteStoreProtocol` using the Python
standard-library ``sqlite3`` module.  Timestamps are stored as unix
seconds.

The connection runs in autocommit mode; every multi-statement operation
opens an explicit transaction through :meth:`SQLiteStore.transaction`
(writes) or :meth:`SQLiteStore.snapshot` (consistent reads).
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from notegraph.core.exceptions import StoreAccessError
from notegraph.core.models import (
    Edge,
    GraphStats,
    HierarchyKind,
    Note,
    NoteTagAssignment,
    ProvenanceSource,
    Tag,
    utcnow,
)
from notegraph.storage.graph import TagGraph
from notegraph.utils.text import normalize_tag

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL constants
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    id          INTEGER PRIMARY KEY,
    content     TEXT    NOT NULL,
    created_at  INTEGER,
    updated_at  INTEGER
);

CREATE TABLE IF NOT EXISTS tags (
    id                INTEGER PRIMARY KEY,
    name              TEXT    NOT NULL UNIQUE COLLATE NOCASE,
    degree_centrality INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS note_tags (
    note_id     INTEGER NOT NULL,
    tag_id      INTEGER NOT NULL,
    confidence  REAL    NOT NULL DEFAULT 1.0,
    source      TEXT    NOT NULL DEFAULT 'user',
    created_at  INTEGER,
    PRIMARY KEY (note_id, tag_id),
    FOREIGN KEY (note_id) REFERENCES notes(id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tag_aliases (
    alias             TEXT    PRIMARY KEY COLLATE NOCASE,
    canonical_tag_id  INTEGER NOT NULL,
    source            TEXT    NOT NULL,
    confidence        REAL    NOT NULL,
    created_at        INTEGER NOT NULL,
    model_version     TEXT,
    FOREIGN KEY (canonical_tag_id) REFERENCES tags(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS edges (
    id             INTEGER PRIMARY KEY,
    source_tag_id  INTEGER NOT NULL,
    target_tag_id  INTEGER NOT NULL,
    confidence     REAL,
    hierarchy_type TEXT CHECK (hierarchy_type IN ('generic', 'partitive')),
    valid_from     INTEGER,
    valid_until    INTEGER,
    source         TEXT    NOT NULL DEFAULT 'user',
    model_version  TEXT,
    verified       INTEGER NOT NULL DEFAULT 0,
    created_at     INTEGER,
    updated_at     INTEGER,
    FOREIGN KEY (source_tag_id) REFERENCES tags(id) ON DELETE CASCADE,
    FOREIGN KEY (target_tag_id) REFERENCES tags(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_notes_created ON notes(created_at);
CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag_id);
CREATE INDEX IF NOT EXISTS idx_tag_aliases_canonical ON tag_aliases(canonical_tag_id);
CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source_tag_id);
CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_tag_id);
"""

_EDGE_COLUMNS = (
    "id, source_tag_id, target_tag_id, confidence, hierarchy_type, valid_from, "
    "valid_until, source, model_version, verified, created_at, updated_at"
)

_UPSERT_ALIAS = """
INSERT INTO tag_aliases (alias, canonical_tag_id, source, confidence, created_at, model_version)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(alias) DO UPDATE SET
    canonical_tag_id = excluded.canonical_tag_id,
    source           = excluded.source,
    confidence       = excluded.confidence,
    model_version    = excluded.model_version
"""

# Older SQLite builds cap bound variables at 999.
_MAX_BATCH = 500

_UPSERT_ASSIGNMENT = """
INSERT INTO note_tags (note_id, tag_id, confidence, source, created_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(note_id, tag_id) DO UPDATE SET
    confidence = excluded.confidence,
    source     = excluded.source
"""


def to_timestamp(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _batches(ids: list[int], size: int = _MAX_BATCH) -> Iterator[list[int]]:
    """Split *ids* so no ``IN (...)`` exceeds SQLite's bound-variable limit."""
    for offset in range(0, len(ids), size):
        yield list(ids[offset : offset + size])


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class SQLiteStore:
    """SQLite implementation of the graph and note store protocols.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created
        when missing.  Use ``":memory:"`` for an in-memory store.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self._db_path, isolation_level=None)
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreAccessError(f"cannot open store at {self._db_path}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()

    # -- transactions -------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one atomic write transaction.

        ``sqlite3.Error`` raised inside the block is rolled back and
        re-raised as :class:`StoreAccessError`; notegraph errors are rolled
        back and propagated unchanged.
        """
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StoreAccessError(f"cannot begin transaction: {exc}") from exc
        try:
            yield self._conn
        except sqlite3.Error as exc:
            self._conn.execute("ROLLBACK")
            raise StoreAccessError(f"write failed: {exc}") from exc
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed reads against one consistent snapshot."""
        try:
            self._conn.execute("BEGIN")
            try:
                yield self._conn
            finally:
                self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise StoreAccessError(f"read failed: {exc}") from exc

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise StoreAccessError(f"{action} failed: {exc}") from exc

    # -- tags ---------------------------------------------------------------

    def add_tag(self, name: str) -> Tag:
        """Return the tag called *name*, creating it if needed.

        Names are normalised first; a name that is a registered alias
        resolves to its canonical tag instead of creating a new one.
        """
        normalized = normalize_tag(name)
        if not normalized:
            raise ValueError(f"tag name {name!r} is empty after normalisation")
        canonical = self.resolve_alias(normalized)
        if canonical is not None:
            return canonical
        existing = self.find_tag(normalized)
        if existing is not None:
            return existing
        with self._guard("insert tag"):
            cur = self._conn.execute("INSERT INTO tags (name) VALUES (?)", (normalized,))
        return Tag(id=cur.lastrowid, name=normalized)

    def get_tag(self, tag_id: int) -> Tag | None:
        with self._guard("read tag"):
            row = self._conn.execute(
                "SELECT id, name, degree_centrality FROM tags WHERE id = ?", (tag_id,),
            ).fetchone()
        return Tag(id=row[0], name=row[1], degree_centrality=row[2]) if row else None

    def find_tag(self, name: str) -> Tag | None:
        with self._guard("read tag"):
            row = self._conn.execute(
                "SELECT id, name, degree_centrality FROM tags WHERE name = ? COLLATE NOCASE",
                (name,),
            ).fetchone()
        return Tag(id=row[0], name=row[1], degree_centrality=row[2]) if row else None

    def get_all_tags(self) -> list[Tag]:
        with self._guard("read tags"):
            rows = self._conn.execute(
                "SELECT id, name, degree_centrality FROM tags ORDER BY id"
            ).fetchall()
        return [Tag(id=r[0], name=r[1], degree_centrality=r[2]) for r in rows]

    # -- aliases ------------------------------------------------------------

    def add_alias(
        self,
        alias: str,
        canonical_tag_id: int,
        source: ProvenanceSource = ProvenanceSource.USER,
        confidence: float = 1.0,
        model_version: str | None = None,
    ) -> None:
        """Map *alias* onto a canonical tag (insert or update)."""
        normalized = normalize_tag(alias)
        with self._guard("insert alias"):
            self._conn.execute(
                _UPSERT_ALIAS,
                (
                    normalized,
                    canonical_tag_id,
                    ProvenanceSource(source).value,
                    confidence,
                    to_timestamp(utcnow()),
                    model_version,
                ),
            )

    def resolve_alias(self, alias: str) -> Tag | None:
        with self._guard("resolve alias"):
            row = self._conn.execute(
                "SELECT t.id, t.name, t.degree_centrality FROM tag_aliases a "
                "JOIN tags t ON t.id = a.canonical_tag_id "
                "WHERE a.alias = ? COLLATE NOCASE",
                (alias,),
            ).fetchone()
        return Tag(id=row[0], name=row[1], degree_centrality=row[2]) if row else None

    def aliases_for(self, tag_id: int, min_inferred_confidence: float = 0.8) -> list[str]:
        with self._guard("read aliases"):
            rows = self._conn.execute(
                "SELECT alias FROM tag_aliases WHERE canonical_tag_id = ? "
                "AND (source = 'user' OR confidence >= ?) ORDER BY alias",
                (tag_id, min_inferred_confidence),
            ).fetchall()
        return [r[0] for r in rows]

    # -- notes --------------------------------------------------------------

    def add_note(
        self,
        content: str,
        tags: list[str] | None = None,
        created_at: datetime | None = None,
        tag_confidence: float = 1.0,
    ) -> Note:
        """Insert a note and assign *tags* (created on demand) atomically."""
        created = created_at or utcnow()
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO notes (content, created_at, updated_at) VALUES (?, ?, ?)",
                (content, to_timestamp(created), to_timestamp(created)),
            )
            note_id = cur.lastrowid
            for name in tags or []:
                tag = self.add_tag(name)
                self.assign_tag(note_id, tag.id, confidence=tag_confidence)
        note = self.get_note(note_id)
        if note is None:
            raise StoreAccessError(f"note {note_id} was not found after insert")
        return note

    def assign_tag(
        self,
        note_id: int,
        tag_id: int,
        confidence: float = 1.0,
        source: ProvenanceSource = ProvenanceSource.USER,
    ) -> None:
        with self._guard("assign tag"):
            self._conn.execute(
                _UPSERT_ASSIGNMENT,
                (note_id, tag_id, confidence, ProvenanceSource(source).value,
                 to_timestamp(utcnow())),
            )

    def get_note(self, note_id: int) -> Note | None:
        notes = self.get_notes([note_id])
        return notes[0] if notes else None

    def get_notes(self, note_ids: list[int]) -> list[Note]:
        """Retrieve multiple notes.  Missing ids are silently skipped."""
        notes: list[Note] = []
        for batch in _batches(note_ids):
            placeholders = ",".join("?" for _ in batch)
            with self._guard("read notes"):
                rows = self._conn.execute(
                    f"SELECT id, content, created_at, updated_at FROM notes "
                    f"WHERE id IN ({placeholders})",
                    batch,
                ).fetchall()
                notes.extend(self._row_to_note(row) for row in rows)
        return notes

    def get_all_notes(self) -> list[Note]:
        with self._guard("read notes"):
            rows = self._conn.execute(
                "SELECT id, content, created_at, updated_at FROM notes ORDER BY id"
            ).fetchall()
            return [self._row_to_note(row) for row in rows]

    # -- assignments --------------------------------------------------------

    def assignments_for_tags(self, tag_ids: list[int]) -> list[NoteTagAssignment]:
        assignments: list[NoteTagAssignment] = []
        for batch in _batches(tag_ids):
            placeholders = ",".join("?" for _ in batch)
            with self._guard("read assignments"):
                rows = self._conn.execute(
                    f"SELECT note_id, tag_id, confidence, source FROM note_tags "
                    f"WHERE tag_id IN ({placeholders})",
                    batch,
                ).fetchall()
            assignments.extend(self._row_to_assignment(r) for r in rows)
        return assignments

    def assignments_for_note(self, note_id: int) -> list[NoteTagAssignment]:
        with self._guard("read assignments"):
            rows = self._conn.execute(
                "SELECT note_id, tag_id, confidence, source FROM note_tags WHERE note_id = ?",
                (note_id,),
            ).fetchall()
        return [self._row_to_assignment(r) for r in rows]

    # -- graph --------------------------------------------------------------

    def load_graph(self) -> TagGraph:
        with self.snapshot() as conn:
            tag_rows = conn.execute(
                "SELECT id, name, degree_centrality FROM tags"
            ).fetchall()
            edge_rows = conn.execute(f"SELECT {_EDGE_COLUMNS} FROM edges").fetchall()
        tags = [Tag(id=r[0], name=r[1], degree_centrality=r[2]) for r in tag_rows]
        edges = [self._row_to_edge(r) for r in edge_rows]
        return TagGraph(tags, edges)

    def get_edges(self, source_tag_id: int, target_tag_id: int) -> list[Edge]:
        with self._guard("read edges"):
            rows = self._conn.execute(
                f"SELECT {_EDGE_COLUMNS} FROM edges "
                "WHERE source_tag_id = ? AND target_tag_id = ?",
                (source_tag_id, target_tag_id),
            ).fetchall()
        return [self._row_to_edge(r) for r in rows]

    def broader_tags(
        self,
        tag_id: int,
        min_confidence: float = 0.0,
        at: datetime | None = None,
    ) -> list[tuple[Tag, float]]:
        instant = to_timestamp(at or utcnow())
        with self._guard("read broader tags"):
            rows = self._conn.execute(
                "SELECT t.id, t.name, t.degree_centrality, e.confidence "
                "FROM edges e JOIN tags t ON t.id = e.target_tag_id "
                "WHERE e.source_tag_id = ? AND e.hierarchy_type = 'generic' "
                "AND e.confidence >= ? "
                "AND (e.valid_from IS NULL OR e.valid_from <= ?) "
                "AND (e.valid_until IS NULL OR e.valid_until > ?) "
                "ORDER BY e.confidence DESC, t.id",
                (tag_id, min_confidence, instant, instant),
            ).fetchall()
        return [
            (Tag(id=r[0], name=r[1], degree_centrality=r[2]), float(r[3])) for r in rows
        ]

    def stats(self) -> GraphStats:
        with self.snapshot() as conn:
            total_notes = conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]
            total_tags, max_degree = conn.execute(
                "SELECT COUNT(*), COALESCE(MAX(degree_centrality), 0) FROM tags"
            ).fetchone()
            connected = conn.execute(
                "SELECT COUNT(*) FROM tags t WHERE EXISTS ("
                "SELECT 1 FROM edges e WHERE e.source_tag_id = t.id OR e.target_tag_id = t.id)"
            ).fetchone()[0]
            total_edges = conn.execute("SELECT COUNT(*) FROM edges").fetchone()[0]
        return GraphStats(
            total_notes=total_notes,
            total_tags=total_tags,
            connected_tags=connected,
            total_edges=total_edges,
            max_degree=max_degree,
        )

    # -- helpers ------------------------------------------------------------

    def _tag_names_for(self, note_id: int) -> list[str]:
        rows = self._conn.execute(
            "SELECT t.name FROM note_tags nt JOIN tags t ON t.id = nt.tag_id "
            "WHERE nt.note_id = ? ORDER BY t.name",
            (note_id,),
        ).fetchall()
        return [r[0] for r in rows]

    def _row_to_note(self, row: tuple) -> Note:  # type: ignore[type-arg]
        return Note(
            id=row[0],
            content=row[1],
            created_at=from_timestamp(row[2]) or utcnow(),
            updated_at=from_timestamp(row[3]) or utcnow(),
            tags=self._tag_names_for(row[0]),
        )

    @staticmethod
    def _row_to_assignment(row: tuple) -> NoteTagAssignment:  # type: ignore[type-arg]
        return NoteTagAssignment(
            note_id=row[0],
            tag_id=row[1],
            confidence=row[2],
            source=ProvenanceSource(row[3]),
        )

    @staticmethod
    def _row_to_edge(row: tuple) -> Edge:  # type: ignore[type-arg]
        return Edge(
            id=row[0],
            source_tag_id=row[1],
            target_tag_id=row[2],
            confidence=row[3] if row[3] is not None else 0.0,
            hierarchy_kind=HierarchyKind(row[4]) if row[4] else None,
            valid_from=from_timestamp(row[5]),
            valid_until=from_timestamp(row[6]),
            provenance_source=ProvenanceSource(row[7]),
            model_version=row[8],
            verified=bool(row[9]),
            created_at=from_timestamp(row[10]) or utcnow(),
            updated_at=from_timestamp(row[11]) or utcnow(),
        )

