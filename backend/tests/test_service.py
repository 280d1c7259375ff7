"""End-to-end retrieval through NotegraphService."""

from __future__ import annotations

import itertools

import pytest

from notegraph.api.service import NotegraphService
from notegraph.core.config import RetrievalConfig, load_settings
from notegraph.core.exceptions import (
    ActivationTimeoutError,
    NoteNotFoundError,
    StoreAccessError,
)
from notegraph.core.models import HierarchyKind, NewEdge


@pytest.fixture
def make_service(archive, tmp_path):
    def factory(clock=None, **retrieval):
        settings = load_settings(data_dir=tmp_path, retrieval=RetrievalConfig(**retrieval))
        kwargs = {"clock": clock} if clock is not None else {}
        return NotegraphService(settings=settings, store=archive.store, **kwargs)

    return factory


@pytest.fixture
def service(make_service):
    return make_service()


def ids(archive, *keys: str) -> list[int]:
    return [archive.note_id(k) for k in keys]


def slow_clock():
    ticks = itertools.count(0.0, 10.0)
    return lambda: next(ticks)


# ---------------------------------------------------------------------------
# Graph-only entry points
# ---------------------------------------------------------------------------


def test_graph_search_ranks_by_activation(archive, service):
    # machine-learning (seed, boosted), deep-learning 0.63, ai 0.63,
    # neural-networks 0.176 via the partitive edge
    results = service.graph_search("ML")
    assert [r.note_id for r in results] == ids(
        archive, "gradient", "attention", "history", "backprop"
    )
    assert results[0].score == pytest.approx(1.0)
    assert all(r.keyword_score is None for r in results)


def test_graph_search_limit(service):
    assert len(service.graph_search("ML", limit=2)) == 2


def test_graph_search_isolated_tag_is_cold(service):
    assert service.graph_search("cooking") == []


def test_graph_search_unknown_terms(service):
    assert service.graph_search("quantum chromodynamics") == []


def test_graph_search_propagates_timeouts(make_service):
    service = make_service(clock=slow_clock())
    with pytest.raises(ActivationTimeoutError):
        service.graph_search("ML")


def test_related_to_note_excludes_itself(archive, service):
    results = service.related_to_note(archive.note_id("attention"))
    assert [r.note_id for r in results] == ids(archive, "gradient", "history", "backprop")


def test_related_to_missing_note(service):
    with pytest.raises(NoteNotFoundError):
        service.related_to_note(424242)


# ---------------------------------------------------------------------------
# Dual-channel search
# ---------------------------------------------------------------------------


def test_search_combines_channels(archive, service):
    results, metadata = service.search("ML")
    assert not metadata.graph_skipped
    assert metadata.keyword_result_count > 0
    assert metadata.graph_result_count == 4
    assert "machine-learning" in metadata.expanded_terms
    assert results[0].note_id == archive.note_id("gradient")
    assert results[0].found_by_both
    assert results[0].score == pytest.approx(1.0)


def test_search_without_graph_seeds_is_keyword_only(archive, service):
    results, metadata = service.search("gradient")
    assert [r.note_id for r in results] == ids(archive, "gradient")
    assert metadata.graph_skipped
    assert "cold start" in metadata.skip_reason


def test_search_is_keyword_only_when_seeds_only_reach_each_other(store, writer, tmp_path):
    rust = store.add_tag("rust").id
    ownership = store.add_tag("ownership").id
    writer.create_edge(
        NewEdge(
            source_tag_id=ownership,
            target_tag_id=rust,
            hierarchy_kind=HierarchyKind.GENERIC,
            confidence=0.9,
        )
    )
    note = store.add_note("rust ownership borrow", tags=["rust", "ownership"])
    store.add_note("python generators", tags=["python"])

    service = NotegraphService(settings=load_settings(data_dir=tmp_path), store=store)
    results, metadata = service.search("rust ownership")
    assert metadata.graph_skipped
    assert "cold start" in metadata.skip_reason
    assert metadata.graph_result_count == 0
    assert [r.note_id for r in results] == [note.id]
    assert results[0].graph_score is None


def test_search_falls_back_on_sparse_graph(archive, make_service):
    service = make_service(min_graph_density=0.9)
    results, metadata = service.search("ML")
    assert metadata.graph_skipped
    assert "density" in metadata.skip_reason
    assert not any(r.found_by_both for r in results)


def test_search_falls_back_on_timeout(archive, make_service):
    service = make_service(clock=slow_clock())
    results, metadata = service.search("ML")
    assert metadata.graph_skipped
    assert metadata.skip_reason.startswith("graph channel failed")
    assert results


def test_search_falls_back_on_store_error(archive, service, monkeypatch):
    def broken():
        raise StoreAccessError("database is locked")

    monkeypatch.setattr(archive.store, "load_graph", broken)
    results, metadata = service.search("gradient descent")
    assert [r.note_id for r in results] == ids(archive, "gradient")
    assert "database is locked" in metadata.skip_reason


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


def test_status(service):
    stats = service.status()
    assert (stats.total_notes, stats.total_tags, stats.total_edges) == (6, 7, 4)


def test_backfill_on_consistent_store(service):
    assert service.backfill_centrality() == 0
    assert service.centrality_drift() == []
