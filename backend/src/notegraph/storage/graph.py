"""In-memory snapshot of the tag graph.

:class:`TagGraph` wraps a ``networkx.MultiDiGraph`` whose nodes are tag ids
and whose edges are keyed by edge id.  It is built once per retrieval call
from a single read transaction and never mutated afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

import networkx as nx

from notegraph.core.exceptions import InvariantViolation
from notegraph.core.models import Edge, GraphStats, Tag, utcnow

logger = logging.getLogger(__name__)


class TagGraph:
    """Read-only tag graph with per-tag degree centrality.

    Parameters
    ----------
    tags:
        Every tag in the store.
    edges:
        Every edge in the store, regardless of validity window.

    Raises
    ------
    InvariantViolation
        If an edge references a tag that is not in *tags* or a tag carries
        a negative centrality counter.
    """

    def __init__(self, tags: Iterable[Tag], edges: Iterable[Edge]) -> None:
        self._graph = nx.MultiDiGraph()
        for tag in tags:
            if tag.degree_centrality < 0:
                raise InvariantViolation(
                    f"tag {tag.id} ({tag.name!r}) has negative degree centrality "
                    f"{tag.degree_centrality}"
                )
            self._graph.add_node(tag.id, tag=tag)

        for edge in edges:
            for endpoint in (edge.source_tag_id, edge.target_tag_id):
                if endpoint not in self._graph:
                    raise InvariantViolation(
                        f"edge {edge.id} references missing tag {endpoint}"
                    )
            self._graph.add_edge(
                edge.source_tag_id, edge.target_tag_id, key=edge.id, edge=edge,
            )

        self._max_degree = max(
            (data["tag"].degree_centrality for _, data in self._graph.nodes(data=True)),
            default=0,
        )
        logger.debug(
            "Loaded tag graph: %d tags, %d edges, max degree %d",
            self._graph.number_of_nodes(),
            self._graph.number_of_edges(),
            self._max_degree,
        )

    # -- lookups ------------------------------------------------------------

    def __contains__(self, tag_id: object) -> bool:
        return tag_id in self._graph

    def tag(self, tag_id: int) -> Tag:
        try:
            return self._graph.nodes[tag_id]["tag"]
        except KeyError:
            raise InvariantViolation(f"tag {tag_id} is not in the graph") from None

    def degree(self, tag_id: int) -> int:
        """Stored degree centrality of *tag_id*."""
        return self.tag(tag_id).degree_centrality

    @property
    def max_degree(self) -> int:
        return self._max_degree

    def incident_edges(self, tag_id: int, at: datetime | None = None) -> Iterator[Edge]:
        """Yield edges touching *tag_id* in either direction, valid at *at*.

        A self-loop is yielded once.
        """
        instant = at or utcnow()
        seen: set[int] = set()
        for _, _, data in self._graph.out_edges(tag_id, data=True):
            edge: Edge = data["edge"]
            if edge.id not in seen and edge.is_valid_at(instant):
                seen.add(edge.id)
                yield edge
        for _, _, data in self._graph.in_edges(tag_id, data=True):
            edge = data["edge"]
            if edge.id not in seen and edge.is_valid_at(instant):
                seen.add(edge.id)
                yield edge

    # -- summary ------------------------------------------------------------

    @property
    def tag_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def connected_tag_count(self) -> int:
        """Number of tags with at least one edge, from the edge set itself."""
        return sum(1 for node in self._graph.nodes if self._graph.degree(node) > 0)

    def stats(self) -> GraphStats:
        return GraphStats(
            total_tags=self.tag_count,
            connected_tags=self.connected_tag_count(),
            total_edges=self.edge_count,
            max_degree=self._max_degree,
        )
