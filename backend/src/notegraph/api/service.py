"""UI-agnostic service facade for notegraph.

Provides the three retrieval entry points (graph search, related notes and
dual-channel search) plus store maintenance, hiding storage, expansion,
activation and merging details from calling code.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from notegraph.core.config import Settings, load_settings
from notegraph.core.exceptions import (
    ActivationTimeoutError,
    NoteNotFoundError,
    StoreAccessError,
)
from notegraph.core.models import GraphStats, SearchMetadata, SearchResult
from notegraph.graph.edges import EdgeWriter
from notegraph.search.activation import SpreadingActivationEngine
from notegraph.search.base import KeywordChannelProtocol
from notegraph.search.fusion import DualChannelMerger, build_search_results, rank_scores
from notegraph.search.keyword import BM25KeywordChannel
from notegraph.search.query import QueryExpander
from notegraph.storage.sqlite import SQLiteStore

logger = logging.getLogger(__name__)


class NotegraphService:
    """High-level service facade for retrieving notes.

    Parameters
    ----------
    settings:
        Application configuration.  When ``None`` settings are loaded from
        the environment.
    store:
        Store to read from.  When ``None`` a :class:`SQLiteStore` is opened
        at ``settings.db_path``.
    keyword_channel:
        Keyword channel to pair with the graph channel.  Defaults to a
        BM25 index over the store's notes.
    clock:
        Monotonic clock handed to the activation engine.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: SQLiteStore | None = None,
        keyword_channel: KeywordChannelProtocol | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or load_settings()
        self._store = store or SQLiteStore(self._settings.db_path)

        self._expander = QueryExpander(self._store)
        self._engine = SpreadingActivationEngine(self._store, clock=clock)
        self._keyword = keyword_channel or BM25KeywordChannel(self._store)
        self._merger = DualChannelMerger(self._store)
        self._edges = EdgeWriter(self._store)

    def close(self) -> None:
        self._store.close()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def graph_search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        """Rank notes for *query* using the tag graph alone.

        Parameters
        ----------
        query:
            Free-text query; terms are resolved to tags via aliases.
        limit:
            Maximum number of results; defaults to ``settings.default_limit``.

        Returns
        -------
        list[SearchResult]
            Empty when no query term resolves to a tag or activation does
            not spread beyond the seeds.

        Raises
        ------
        StoreAccessError, ActivationTimeoutError
            The graph channel could not complete.
        """
        config = self._settings.retrieval
        seeds = self._expander.expand(query, config)
        if not seeds:
            logger.debug("No tags matched %r; graph search is empty", query)
            return []

        scores = self._engine.search(seeds, config)
        return build_search_results(
            rank_scores(scores, self._store),
            keyword_scores={},
            graph_scores=scores,
            note_store=self._store,
            terms=seeds.names,
            limit=self._limit(limit),
            snippet_length=self._settings.snippet_length,
        )

    def related_to_note(self, note_id: int, limit: int | None = None) -> list[SearchResult]:
        """Notes related to *note_id* through the tag graph.

        The note's own tags seed the activation and the note itself is
        excluded from the results.

        Raises
        ------
        NoteNotFoundError
            If *note_id* does not exist.
        """
        note = self._store.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(f"note {note_id} does not exist")

        config = self._settings.retrieval
        seeds = self._expander.expand("", config, seed_note=note_id)
        if not seeds:
            logger.debug("Note %d has no tags; nothing is related", note_id)
            return []

        scores = self._engine.search(seeds, config, exclude_note=note_id)
        return build_search_results(
            rank_scores(scores, self._store),
            keyword_scores={},
            graph_scores=scores,
            note_store=self._store,
            terms=seeds.names,
            limit=self._limit(limit),
            snippet_length=self._settings.snippet_length,
        )

    def search(
        self,
        query: str,
        limit: int | None = None,
    ) -> tuple[list[SearchResult], SearchMetadata]:
        """Dual-channel search: keyword matching merged with graph activation.

        The graph channel is skipped, and keyword scores are returned as
        they are, when it produces nothing, when the graph is too sparse
        or when it fails to load or times out.

        Returns
        -------
        tuple[list[SearchResult], SearchMetadata]
            Ranked results and a description of how they were produced.
        """
        started = time.perf_counter()
        config = self._settings.retrieval

        terms = self._expander.keyword_terms(query, config)
        keyword_scores = self._keyword.search(terms)

        graph_scores: dict[int, float] = {}
        density = 0.0
        failure: str | None = None
        try:
            graph = self._store.load_graph()
            density = graph.stats().density
            seeds = self._expander.expand(query, config)
            activations = self._engine.activate(seeds, config, graph=graph)
            graph_scores = self._engine.score_notes(activations)
        except (StoreAccessError, ActivationTimeoutError) as exc:
            logger.warning("Graph channel failed, using keyword results only: %s", exc)
            failure = f"graph channel failed: {exc}"
            graph_scores = {}

        outcome = self._merger.merge(keyword_scores, graph_scores, config, graph_density=density)
        skip_reason = failure or outcome.skip_reason

        results = build_search_results(
            outcome.ranked,
            keyword_scores=keyword_scores,
            graph_scores={} if outcome.graph_skipped else graph_scores,
            note_store=self._store,
            terms=terms,
            limit=self._limit(limit),
            snippet_length=self._settings.snippet_length,
        )
        metadata = SearchMetadata(
            graph_skipped=outcome.graph_skipped,
            skip_reason=skip_reason,
            keyword_result_count=len(keyword_scores),
            graph_result_count=len(graph_scores),
            expanded_terms=terms,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        logger.debug(
            "Search %r: %d keyword, %d graph, %d returned (graph skipped: %s)",
            query,
            metadata.keyword_result_count,
            metadata.graph_result_count,
            len(results),
            metadata.graph_skipped,
        )
        return results, metadata

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def status(self) -> GraphStats:
        """Return note, tag and edge counts for the store."""
        return self._store.stats()

    def centrality_drift(self) -> list[tuple[int, int, int]]:
        """Return ``(tag_id, stored, expected)`` for every wrong counter."""
        return self._edges.centrality_drift()

    def backfill_centrality(self) -> int:
        """Recompute every degree-centrality counter; returns tags corrected."""
        return self._edges.backfill_centrality()

    def _limit(self, limit: int | None) -> int:
        return self._settings.default_limit if limit is None else limit
