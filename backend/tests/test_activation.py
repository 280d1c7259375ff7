"""Tests for spreading activation over in-memory tag graphs."""

from __future__ import annotations

import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from notegraph.core.config import RetrievalConfig
from notegraph.core.exceptions import ActivationTimeoutError, InvariantViolation
from notegraph.core.models import Edge, HierarchyKind, NoteTagAssignment, Tag
from notegraph.search.activation import (
    SpreadingActivationEngine,
    apply_centrality_boost,
    propagate,
    score_assignments,
)
from notegraph.storage.graph import TagGraph

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
GENERIC = HierarchyKind.GENERIC
PARTITIVE = HierarchyKind.PARTITIVE


def make_graph(
    edges: list[tuple[int, int, float, HierarchyKind | None]],
    n_tags: int | None = None,
    windows: dict[int, tuple[datetime | None, datetime | None]] | None = None,
) -> TagGraph:
    """Tags are numbered 1..n; degree centrality matches the edge list."""
    windows = windows or {}
    degree: Counter[int] = Counter()
    for source, target, _, _ in edges:
        degree[source] += 1
        degree[target] += 1
    n = n_tags or max([0, *degree])
    tags = [Tag(id=i, name=f"tag-{i}", degree_centrality=degree[i]) for i in range(1, n + 1)]
    edge_models = []
    for edge_id, (source, target, confidence, kind) in enumerate(edges, 1):
        valid_from, valid_until = windows.get(edge_id, (None, None))
        edge_models.append(
            Edge(
                id=edge_id,
                source_tag_id=source,
                target_tag_id=target,
                confidence=confidence,
                hierarchy_kind=kind,
                valid_from=valid_from,
                valid_until=valid_until,
            )
        )
    return TagGraph(tags, edge_models)


def run(graph: TagGraph, seeds: dict[int, float], **kwargs) -> dict[int, float]:
    params = {"decay": 0.7, "threshold": 0.1, "max_hops": 3, "at": NOW}
    params.update(kwargs)
    return {tag_id: e.activation for tag_id, e in propagate(graph, seeds, **params).items()}


# ---------------------------------------------------------------------------
# propagate
# ---------------------------------------------------------------------------


def test_generic_edge_single_hop():
    graph = make_graph([(1, 2, 0.9, GENERIC)])
    assert run(graph, {1: 1.0})[2] == pytest.approx(0.63)


def test_partitive_edge_halves_activation():
    graph = make_graph([(1, 2, 0.9, PARTITIVE)])
    assert run(graph, {1: 1.0})[2] == pytest.approx(0.315)


def test_edges_traversed_against_their_direction():
    graph = make_graph([(2, 1, 0.9, GENERIC)])
    assert run(graph, {1: 1.0})[2] == pytest.approx(0.63)


def test_strongest_path_wins():
    # 1.0 * 0.75 * 0.8 = 0.6 and 1.0 * 0.5 * 0.8 = 0.4
    graph = make_graph([(1, 2, 0.75, GENERIC), (2, 1, 0.5, GENERIC)])
    result = run(graph, {1: 1.0}, decay=0.8)
    assert result[2] == pytest.approx(0.6)
    assert result[1] == 1.0


def test_strongest_path_wins_across_seeds():
    graph = make_graph([(1, 3, 1.0, GENERIC), (2, 3, 1.0, GENERIC)])
    result = run(graph, {1: 0.5, 2: 1.0}, decay=0.5)
    assert result[3] == pytest.approx(0.5)


def test_threshold_prunes_weak_paths():
    graph = make_graph([(1, 2, 1.0, GENERIC), (2, 3, 1.0, GENERIC), (3, 4, 1.0, GENERIC)])
    result = run(graph, {1: 1.0}, decay=0.5, threshold=0.2)
    assert result[2] == pytest.approx(0.5)
    assert result[3] == pytest.approx(0.25)
    assert 4 not in result
    assert all(v >= 0.2 for v in result.values())


def test_activation_decreases_monotonically_along_a_path():
    graph = make_graph([(i, i + 1, 0.9, GENERIC) for i in range(1, 6)])
    entries = propagate(graph, {1: 1.0}, decay=0.7, threshold=0.01, max_hops=10, at=NOW)
    by_hop = sorted(entries.values(), key=lambda e: e.hop)
    activations = [e.activation for e in by_hop]
    assert activations == sorted(activations, reverse=True)
    assert len(set(activations)) == len(activations)


def test_max_hops_limits_depth():
    graph = make_graph([(1, 2, 1.0, GENERIC), (2, 3, 1.0, GENERIC)])
    assert set(run(graph, {1: 1.0}, max_hops=1)) == {1, 2}
    assert set(run(graph, {1: 1.0}, max_hops=0)) == {1}


def test_cycles_terminate():
    graph = make_graph([(1, 2, 1.0, GENERIC), (2, 3, 1.0, GENERIC), (3, 1, 1.0, GENERIC)])
    result = run(graph, {1: 1.0}, decay=0.9, threshold=0.001, max_hops=1000)
    assert result[1] == 1.0
    assert result[2] == pytest.approx(0.9)
    assert result[3] == pytest.approx(0.9)


def test_hop_recorded_for_best_path():
    graph = make_graph([(1, 2, 1.0, GENERIC), (2, 3, 1.0, GENERIC)])
    entries = propagate(graph, {1: 1.0}, decay=0.7, threshold=0.1, max_hops=3, at=NOW)
    assert [entries[i].hop for i in (1, 2, 3)] == [0, 1, 2]


def test_expired_and_future_edges_are_ignored():
    graph = make_graph(
        [(1, 2, 1.0, GENERIC), (1, 3, 1.0, GENERIC), (1, 4, 1.0, GENERIC)],
        windows={
            1: (None, NOW - timedelta(days=1)),
            2: (NOW + timedelta(days=1), None),
            3: (NOW - timedelta(days=1), NOW + timedelta(days=1)),
        },
    )
    assert set(run(graph, {1: 1.0})) == {1, 4}


def test_validity_window_end_is_exclusive():
    graph = make_graph([(1, 2, 1.0, GENERIC)], windows={1: (None, NOW)})
    assert set(run(graph, {1: 1.0})) == {1}


def test_confidence_is_clamped():
    graph = make_graph([(1, 2, 1.7, GENERIC), (1, 3, -0.5, GENERIC)])
    result = run(graph, {1: 1.0})
    assert result[2] == pytest.approx(0.7)
    assert 3 not in result


def test_unknown_and_non_positive_seeds_are_skipped():
    graph = make_graph([(1, 2, 1.0, GENERIC)])
    assert set(run(graph, {1: 0.0, 99: 1.0})) == set()


def test_deadline_aborts_traversal():
    graph = make_graph([(1, 2, 1.0, GENERIC)])
    clock = itertools.count(0.0, 1.0)
    with pytest.raises(ActivationTimeoutError):
        propagate(
            graph, {1: 1.0}, decay=0.7, threshold=0.1, max_hops=3,
            at=NOW, deadline=0.5, clock=lambda: next(clock),
        )


def test_edge_to_missing_tag_is_an_invariant_violation():
    tags = [Tag(id=1, name="a", degree_centrality=1)]
    edge = Edge(id=1, source_tag_id=1, target_tag_id=2)
    with pytest.raises(InvariantViolation):
        TagGraph(tags, [edge])


# ---------------------------------------------------------------------------
# Boost and note scoring
# ---------------------------------------------------------------------------


def test_centrality_boost():
    # tag 1 has degree 2 (the max), tag 2 degree 1
    graph = make_graph([(1, 2, 1.0, GENERIC), (1, 3, 1.0, GENERIC)])
    boosted = apply_centrality_boost(graph, {1: 0.5, 2: 0.5}, 0.3)
    assert boosted[1] == pytest.approx(0.65)
    assert boosted[2] == pytest.approx(0.575)


def test_centrality_boost_without_edges_is_identity():
    graph = make_graph([], n_tags=2)
    assert apply_centrality_boost(graph, {1: 0.4}, 0.3) == {1: 0.4}


def test_score_assignments_normalises_and_excludes():
    assignments = [
        NoteTagAssignment(note_id=10, tag_id=1, confidence=1.0),
        NoteTagAssignment(note_id=10, tag_id=2, confidence=0.5),
        NoteTagAssignment(note_id=11, tag_id=2, confidence=1.0),
        NoteTagAssignment(note_id=12, tag_id=1, confidence=1.0),
        NoteTagAssignment(note_id=13, tag_id=9, confidence=1.0),
    ]
    scores = score_assignments({1: 0.8, 2: 0.4}, assignments, exclude_note=12)
    # note 10: 0.8 + 0.2 = 1.0, note 11: 0.4
    assert scores == pytest.approx({10: 1.0, 11: 0.4})


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def test_engine_cold_start_on_empty_edge_set(store):
    graph = make_graph([], n_tags=3)
    engine = SpreadingActivationEngine(store)
    assert engine.activate({1: 1.0, 2: 1.0}, RetrievalConfig(), graph=graph, at=NOW) == {}


def test_engine_cold_start_when_nothing_passes_threshold(store):
    graph = make_graph([(1, 2, 0.1, GENERIC)])
    engine = SpreadingActivationEngine(store)
    assert engine.activate({1: 1.0}, RetrievalConfig(), graph=graph, at=NOW) == {}


def test_engine_cold_start_when_seeds_only_reach_each_other(store):
    # 1.0 * 0.9 * 0.7 raises seed 2 above its own weight but reaches no new tag
    graph = make_graph([(1, 2, 0.9, GENERIC)])
    engine = SpreadingActivationEngine(store)
    assert engine.activate({1: 1.0, 2: 0.5}, RetrievalConfig(), graph=graph, at=NOW) == {}


def test_engine_empty_seeds(store):
    engine = SpreadingActivationEngine(store)
    assert engine.activate({}, RetrievalConfig()) == {}


def test_engine_applies_boost_once(store):
    graph = make_graph([(1, 2, 0.9, GENERIC)])
    engine = SpreadingActivationEngine(store)
    result = engine.activate({1: 1.0}, RetrievalConfig(), graph=graph, at=NOW)
    # Both tags have degree 1 == max_degree.
    assert result[1] == pytest.approx(1.3)
    assert result[2] == pytest.approx(0.63 * 1.3)


def test_engine_timeout(store):
    graph = make_graph([(1, 2, 1.0, GENERIC)])
    clock = itertools.count(0.0, 10.0)
    engine = SpreadingActivationEngine(store, clock=lambda: next(clock))
    with pytest.raises(ActivationTimeoutError):
        engine.activate({1: 1.0}, RetrievalConfig(), graph=graph, at=NOW)
