"""Spreading-activation retrieval over the tag graph.

Activation starts at the seed tags and flows outward along edges in both
directions, shrinking at every hop::

    next = activation * edge.confidence * decay * kind_multiplier

Paths that fall below the threshold are pruned.  A tag reached along
several paths keeps its strongest one.  After traversal each tag gets a
mild boost proportional to its degree centrality, and notes are scored by
summing the activation of their tags weighted by assignment confidence.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING

from notegraph.core.config import RetrievalConfig
from notegraph.core.exceptions import ActivationTimeoutError
from notegraph.core.models import (
    ActivationEntry,
    HierarchyKind,
    NoteTagAssignment,
    WeightedTermSet,
    utcnow,
)

if TYPE_CHECKING:
    from notegraph.storage.base import GraphStoreProtocol
    from notegraph.storage.graph import TagGraph

logger = logging.getLogger(__name__)


def propagate(
    graph: TagGraph,
    seeds: Mapping[int, float],
    *,
    decay: float,
    threshold: float,
    max_hops: int,
    partitive_multiplier: float = 0.5,
    at: datetime | None = None,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> dict[int, ActivationEntry]:
    """Run the frontier expansion and return raw (un-boosted) activations.

    Parameters
    ----------
    graph:
        Snapshot to traverse.
    seeds:
        ``tag_id -> initial activation``.  Non-positive seeds are ignored.
    decay, threshold, max_hops, partitive_multiplier:
        Traversal tunables, see :class:`RetrievalConfig`.
    at:
        Instant edge validity windows must cover; defaults to now.
    deadline:
        Value of *clock* after which traversal aborts.

    Returns
    -------
    dict[int, ActivationEntry]
        Best activation per tag and the hop where it was reached.  Seeds
        are always present at hop 0.

    Raises
    ------
    ActivationTimeoutError
        If *deadline* passes before the frontier is exhausted.
    """
    instant = at or utcnow()
    state: dict[int, ActivationEntry] = {}
    frontier: dict[int, float] = {}
    for tag_id, weight in seeds.items():
        if weight <= 0.0:
            continue
        if tag_id not in graph:
            logger.warning("Seed tag %d is not in the graph snapshot; skipping", tag_id)
            continue
        state[tag_id] = ActivationEntry(activation=weight, hop=0)
        frontier[tag_id] = weight

    hop = 0
    while frontier and hop < max_hops:
        next_frontier: dict[int, float] = {}
        for tag_id, activation in frontier.items():
            if deadline is not None and clock() > deadline:
                raise ActivationTimeoutError(
                    f"spreading activation exceeded its time budget at hop {hop}"
                )
            for edge in graph.incident_edges(tag_id, at=instant):
                neighbor = edge.other_end(tag_id)
                graph.tag(neighbor)  # raises InvariantViolation on a dangling edge
                kind_multiplier = (
                    partitive_multiplier
                    if edge.hierarchy_kind is HierarchyKind.PARTITIVE
                    else 1.0
                )
                next_activation = (
                    activation * edge.clamped_confidence * decay * kind_multiplier
                )
                if next_activation < threshold:
                    continue
                # Every recorded value sits at this hop or a shallower one,
                # so "strictly better" is a plain comparison.
                entry = state.get(neighbor)
                if entry is None or next_activation > entry.activation:
                    state[neighbor] = ActivationEntry(activation=next_activation, hop=hop + 1)
                    if next_activation > next_frontier.get(neighbor, 0.0):
                        next_frontier[neighbor] = next_activation
        frontier = next_frontier
        hop += 1

    return state


def apply_centrality_boost(
    graph: TagGraph,
    activations: Mapping[int, float],
    coefficient: float,
) -> dict[int, float]:
    """Scale each activation by ``1 + degree / max_degree * coefficient``."""
    max_degree = graph.max_degree
    if max_degree <= 0 or coefficient == 0.0:
        return dict(activations)
    return {
        tag_id: value * (1.0 + (graph.degree(tag_id) / max_degree) * coefficient)
        for tag_id, value in activations.items()
    }


def score_assignments(
    activations: Mapping[int, float],
    assignments: list[NoteTagAssignment],
    exclude_note: int | None = None,
) -> dict[int, float]:
    """Sum ``activation * assignment confidence`` per note, normalised to [0, 1]."""
    raw: dict[int, float] = defaultdict(float)
    for assignment in assignments:
        if assignment.note_id == exclude_note:
            continue
        activation = activations.get(assignment.tag_id)
        if activation is None:
            continue
        raw[assignment.note_id] += activation * assignment.confidence

    if not raw:
        return {}
    top = max(raw.values())
    if top <= 0.0:
        return {note_id: 0.0 for note_id in raw}
    return {note_id: score / top for note_id, score in raw.items()}


class SpreadingActivationEngine:
    """Graph channel: seeds in, tag activations and note scores out.

    Parameters
    ----------
    graph_store:
        A store satisfying :class:`GraphStoreProtocol`.
    clock:
        Monotonic clock used for the wall-clock backstop.
    """

    def __init__(
        self,
        graph_store: GraphStoreProtocol,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = graph_store
        self._clock = clock

    def activate(
        self,
        seeds: WeightedTermSet | Mapping[int, float],
        config: RetrievalConfig,
        graph: TagGraph | None = None,
        at: datetime | None = None,
    ) -> dict[int, float]:
        """Return ``tag_id -> boosted activation``, or ``{}`` on cold start.

        Cold start means there were no seeds, or no edge carried enough
        activation to reach a tag beyond the seeds.  Seeds that only raise
        one another do not count.  Callers treat the graph channel as
        unavailable for the query.
        """
        seed_map = seeds.as_seeds() if isinstance(seeds, WeightedTermSet) else dict(seeds)
        if not seed_map:
            return {}

        if graph is None:
            graph = self._store.load_graph()

        started = self._clock()
        state = propagate(
            graph,
            seed_map,
            decay=config.decay,
            threshold=config.threshold,
            max_hops=config.max_hops,
            partitive_multiplier=config.partitive_multiplier,
            at=at,
            deadline=started + config.activation_timeout_seconds,
            clock=self._clock,
        )

        if not any(tag_id not in seed_map for tag_id in state):
            logger.debug("Cold start: no tag reached beyond %d seeds", len(seed_map))
            return {}

        activations = apply_centrality_boost(
            graph,
            {tag_id: entry.activation for tag_id, entry in state.items()},
            config.centrality_coefficient,
        )
        logger.debug(
            "Activated %d tags from %d seeds in %.1f ms",
            len(activations),
            len(seed_map),
            (self._clock() - started) * 1000,
        )
        return activations

    def score_notes(
        self,
        activations: Mapping[int, float],
        exclude_note: int | None = None,
    ) -> dict[int, float]:
        """Score every note tagged with an activated tag.

        Parameters
        ----------
        activations:
            Output of :meth:`activate`.
        exclude_note:
            Note to leave out, used when the seeds came from that note.
        """
        if not activations:
            return {}
        assignments = self._store.assignments_for_tags(list(activations))
        return score_assignments(activations, assignments, exclude_note=exclude_note)

    def search(
        self,
        seeds: WeightedTermSet,
        config: RetrievalConfig,
        exclude_note: int | None = None,
    ) -> dict[int, float]:
        """Activate from *seeds* and return normalised note scores."""
        return self.score_notes(self.activate(seeds, config), exclude_note=exclude_note)
