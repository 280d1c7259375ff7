"""Atomic edge mutations.

Every write here is one transaction covering the edge row(s) and the
degree-centrality counters of both endpoints.  Slow producers such as
hierarchy inference compute their :class:`NewEdge` candidates first and
only then call :meth:`EdgeWriter.create_edges`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable

from notegraph.core.exceptions import InvariantViolation
from notegraph.core.models import NewEdge, utcnow
from notegraph.graph.centrality import DegreeCentralityMaintainer
from notegraph.storage.sqlite import SQLiteStore, to_timestamp

logger = logging.getLogger(__name__)

_INSERT_EDGE = """
INSERT INTO edges (
    source_tag_id, target_tag_id, confidence, hierarchy_type, valid_from, valid_until,
    source, model_version, verified, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class EdgeWriter:
    """Creates and deletes edges while keeping centrality consistent.

    Parameters
    ----------
    store:
        The SQLite store that owns the ``edges`` and ``tags`` tables.
    maintainer:
        Centrality hook; a default instance is created when omitted.
    """

    def __init__(
        self,
        store: SQLiteStore,
        maintainer: DegreeCentralityMaintainer | None = None,
    ) -> None:
        self._store = store
        self._maintainer = maintainer or DegreeCentralityMaintainer()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_edge(self, edge: NewEdge) -> int:
        """Insert one edge and bump both endpoint counters.

        Returns
        -------
        int
            The new edge id.

        Raises
        ------
        InvariantViolation
            If either endpoint does not exist.
        """
        with self._store.transaction() as conn:
            return self._insert(conn, edge)

    def create_edges(self, edges: Iterable[NewEdge]) -> list[int]:
        """Insert a batch of edges in a single transaction.

        Either every edge is written or none is.
        """
        with self._store.transaction() as conn:
            ids = [self._insert(conn, edge) for edge in edges]
        logger.info("Inserted %d edges", len(ids))
        return ids

    def _insert(self, conn: sqlite3.Connection, edge: NewEdge) -> int:
        for tag_id in (edge.source_tag_id, edge.target_tag_id):
            row = conn.execute("SELECT 1 FROM tags WHERE id = ?", (tag_id,)).fetchone()
            if row is None:
                raise InvariantViolation(f"cannot create edge: tag {tag_id} does not exist")

        now = to_timestamp(utcnow())
        cur = conn.execute(
            _INSERT_EDGE,
            (
                edge.source_tag_id,
                edge.target_tag_id,
                edge.confidence,
                edge.hierarchy_kind.value if edge.hierarchy_kind else None,
                to_timestamp(edge.valid_from),
                to_timestamp(edge.valid_until),
                edge.provenance_source.value,
                edge.model_version,
                int(edge.verified),
                now,
                now,
            ),
        )
        self._maintainer.on_edge_created(conn, edge.source_tag_id, edge.target_tag_id)
        logger.debug(
            "Edge %d created: %d -> %d (%s, confidence %.2f)",
            cur.lastrowid,
            edge.source_tag_id,
            edge.target_tag_id,
            edge.hierarchy_kind.value if edge.hierarchy_kind else "related",
            edge.confidence,
        )
        return cur.lastrowid

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_edge(self, source_tag_id: int, target_tag_id: int) -> int:
        """Delete every edge from *source_tag_id* to *target_tag_id*.

        Idempotent: deleting a missing edge is a no-op.

        Returns
        -------
        int
            Number of edges removed.
        """
        with self._store.transaction() as conn:
            rows = conn.execute(
                "SELECT id FROM edges WHERE source_tag_id = ? AND target_tag_id = ?",
                (source_tag_id, target_tag_id),
            ).fetchall()
            for (edge_id,) in rows:
                conn.execute("DELETE FROM edges WHERE id = ?", (edge_id,))
                self._maintainer.on_edge_deleted(conn, source_tag_id, target_tag_id)
        return len(rows)

    def delete_edge_by_id(self, edge_id: int) -> bool:
        with self._store.transaction() as conn:
            row = conn.execute(
                "SELECT source_tag_id, target_tag_id FROM edges WHERE id = ?", (edge_id,),
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM edges WHERE id = ?", (edge_id,))
            self._maintainer.on_edge_deleted(conn, row[0], row[1])
        return True

    def delete_tag(self, tag_id: int) -> bool:
        """Delete a tag, cascading its edges and fixing surviving counters.

        Returns
        -------
        bool
            ``False`` if the tag did not exist.
        """
        with self._store.transaction() as conn:
            if conn.execute("SELECT 1 FROM tags WHERE id = ?", (tag_id,)).fetchone() is None:
                return False
            rows = conn.execute(
                "SELECT source_tag_id, target_tag_id FROM edges "
                "WHERE source_tag_id = ? OR target_tag_id = ?",
                (tag_id, tag_id),
            ).fetchall()
            for source, target in rows:
                surviving = target if source == tag_id else source
                if surviving != tag_id:
                    self._maintainer.on_endpoint_removed(conn, surviving)
            conn.execute("DELETE FROM edges WHERE source_tag_id = ? OR target_tag_id = ?",
                         (tag_id, tag_id))
            conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        logger.info("Tag %d deleted with %d incident edges", tag_id, len(rows))
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def backfill_centrality(self) -> int:
        with self._store.transaction() as conn:
            return self._maintainer.backfill(conn)

    def centrality_drift(self) -> list[tuple[int, int, int]]:
        with self._store.snapshot() as conn:
            return self._maintainer.verify(conn)
