"""Degree-centrality maintenance for the tag graph.

Each tag stores the number of edges incident to it (in either direction).
The counters are adjusted incrementally by whichever component writes
edges, inside the same transaction as the edge insert or delete, so they
are never observed out of step with the edge set.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

_INCREMENT = "UPDATE tags SET degree_centrality = degree_centrality + 1 WHERE id = ?"
_DECREMENT = (
    "UPDATE tags SET degree_centrality = MAX(0, degree_centrality - 1) WHERE id = ?"
)
_RECOMPUTE = """
UPDATE tags SET degree_centrality = (
    (SELECT COUNT(*) FROM edges WHERE source_tag_id = tags.id)
  + (SELECT COUNT(*) FROM edges WHERE target_tag_id = tags.id)
)
"""
_DRIFT = """
SELECT id, degree_centrality, expected FROM (
    SELECT t.id, t.degree_centrality,
        (SELECT COUNT(*) FROM edges WHERE source_tag_id = t.id)
      + (SELECT COUNT(*) FROM edges WHERE target_tag_id = t.id) AS expected
    FROM tags t
) WHERE degree_centrality != expected
ORDER BY id
"""


class DegreeCentralityMaintainer:
    """Keeps ``tags.degree_centrality`` consistent with the ``edges`` table.

    Every method takes the connection of an already-open transaction; the
    maintainer never begins or commits one itself.  A self-loop counts
    twice on its single tag, matching :meth:`backfill`.
    """

    def on_edge_created(self, conn: sqlite3.Connection, source: int, target: int) -> None:
        conn.execute(_INCREMENT, (source,))
        conn.execute(_INCREMENT, (target,))

    def on_edge_deleted(self, conn: sqlite3.Connection, source: int, target: int) -> None:
        """Decrement both endpoints, floored at zero."""
        conn.execute(_DECREMENT, (source,))
        conn.execute(_DECREMENT, (target,))

    def on_endpoint_removed(self, conn: sqlite3.Connection, surviving: int) -> None:
        """Decrement the endpoint left behind when the other tag is deleted."""
        conn.execute(_DECREMENT, (surviving,))

    def backfill(self, conn: sqlite3.Connection) -> int:
        """Recompute every counter from the edge set.

        Intended as a one-time repair over pre-existing edges; incremental
        maintenance keeps the counters authoritative afterwards.

        Returns
        -------
        int
            Number of tags whose counter changed.
        """
        drifted = len(self.verify(conn))
        conn.execute(_RECOMPUTE)
        logger.info("Degree centrality backfilled (%d tags corrected)", drifted)
        return drifted

    def verify(self, conn: sqlite3.Connection) -> list[tuple[int, int, int]]:
        """Return ``(tag_id, stored, expected)`` for every drifted counter."""
        return [(r[0], r[1], r[2]) for r in conn.execute(_DRIFT).fetchall()]
