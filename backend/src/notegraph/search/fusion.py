"""Dual-channel merge and search-result construction.

This module provides:

- :class:`DualChannelMerger` -- combine keyword and graph note scores with
  an intersection boost, falling back to keyword-only ranking when the
  graph channel is cold or the graph is too sparse.
- :func:`rank_scores` -- order a score map with recency tie breaking.
- :func:`build_search_results` -- hydrate ranked scores into full
  :class:`SearchResult` objects by looking up note content.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from notegraph.core.config import RetrievalConfig
from notegraph.core.models import Note, SearchResult

if TYPE_CHECKING:
    from notegraph.storage.base import NoteStoreProtocol

logger = logging.getLogger(__name__)

_EPOCH = 0.0


@dataclass
class MergeOutcome:
    """Ranked ``(note_id, score)`` pairs plus how they were produced."""

    ranked: list[tuple[int, float]] = field(default_factory=list)
    graph_skipped: bool = False
    skip_reason: str | None = None


class DualChannelMerger:
    """Merge keyword and graph note scores into one ranking.

    Parameters
    ----------
    note_store:
        Used to read note timestamps for tie breaking.
    """

    def __init__(self, note_store: NoteStoreProtocol) -> None:
        self._note_store = note_store

    def merge(
        self,
        keyword_scores: Mapping[int, float],
        graph_scores: Mapping[int, float],
        config: RetrievalConfig,
        graph_density: float = 1.0,
    ) -> MergeOutcome:
        """Combine the two channels.

        If *graph_scores* is empty or *graph_density* is below
        ``config.min_graph_density`` the keyword scores are returned
        unmodified, sorted descending.  Otherwise every note gets::

            combined = keyword + graph          (x intersection_boost if both > 0)

        and the combined scores are divided by their maximum.

        Ties are broken by the most recent note timestamp, then note id.
        """
        if not graph_scores:
            reason = "graph channel returned no activation (cold start)"
        elif graph_density < config.min_graph_density:
            reason = (
                f"graph density {graph_density:.3f} below minimum "
                f"{config.min_graph_density:.3f}"
            )
        else:
            reason = None

        if reason is not None:
            logger.debug("Keyword-only ranking: %s", reason)
            return MergeOutcome(
                ranked=self._rank(dict(keyword_scores)),
                graph_skipped=True,
                skip_reason=reason,
            )

        combined: dict[int, float] = {}
        for note_id in {*keyword_scores, *graph_scores}:
            kw = keyword_scores.get(note_id, 0.0)
            gr = graph_scores.get(note_id, 0.0)
            score = kw + gr
            if kw > 0.0 and gr > 0.0:
                score *= config.intersection_boost
            combined[note_id] = score

        top = max(combined.values(), default=0.0)
        if top > 0.0:
            combined = {note_id: score / top for note_id, score in combined.items()}

        return MergeOutcome(ranked=self._rank(combined))

    def _rank(self, scores: dict[int, float]) -> list[tuple[int, float]]:
        return rank_scores(scores, self._note_store)


def rank_scores(
    scores: Mapping[int, float],
    note_store: NoteStoreProtocol,
) -> list[tuple[int, float]]:
    """Sort *scores* descending; ties go to the newer note, then the lower id."""
    if not scores:
        return []
    recency = {
        note.id: note.created_at.timestamp()
        for note in note_store.get_notes(list(scores))
    }
    return sorted(
        scores.items(),
        key=lambda item: (-item[1], -recency.get(item[0], _EPOCH), item[0]),
    )


# ---------------------------------------------------------------------------
# Result hydration
# ---------------------------------------------------------------------------


def _extract_best_snippet(text: str, terms: list[str], length: int = 200) -> str:
    """Find the window of *length* chars in *text* with the most term overlap.

    Candidate windows open a quarter of *length* before each term
    occurrence so the match is not pushed against the window's edge.
    """
    if len(text) <= length:
        return text

    tokens = {t for term in terms for t in re.findall(r"\w+", term.lower())}
    if not tokens:
        return _truncate(text, length)

    best_score = 0
    best_start = 0
    lowered = text.lower()
    lead = length // 4
    positions = sorted(
        match.start() for t in tokens for match in re.finditer(re.escape(t), lowered)
    )
    for position in positions:
        start = max(0, min(position - lead, len(text) - length))
        window = lowered[start : start + length]
        score = sum(1 for t in tokens if t in window)
        if score > best_score:
            best_score = score
            best_start = start
    if best_score == 0:
        return _truncate(text, length)

    snippet_text = text[best_start : best_start + length]
    prefix = "..." if best_start > 0 else ""
    suffix = "..." if best_start + length < len(text) else ""
    if suffix:
        last_space = snippet_text.rfind(" ")
        trimmed = snippet_text[:last_space].lower()
        if last_space > len(snippet_text) * 0.8 and (
            sum(1 for t in tokens if t in trimmed) == best_score
        ):
            snippet_text = snippet_text[:last_space]
    return prefix + snippet_text + suffix


def _truncate(text: str, length: int) -> str:
    """Word-aware truncation fallback."""
    truncated = text[:length]
    last_space = truncated.rfind(" ")
    if last_space > length * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."


def build_search_results(
    ranked: list[tuple[int, float]],
    keyword_scores: Mapping[int, float],
    graph_scores: Mapping[int, float],
    note_store: NoteStoreProtocol,
    terms: list[str] | None = None,
    limit: int | None = None,
    snippet_length: int = 200,
) -> list[SearchResult]:
    """Convert ranked scores into fully hydrated :class:`SearchResult` objects.

    Parameters
    ----------
    ranked:
        ``(note_id, score)`` pairs in final order.
    keyword_scores, graph_scores:
        Per-channel scores, attached to each result when present.
    note_store:
        A store satisfying :class:`NoteStoreProtocol`.
    terms:
        Expanded query terms used to pick the snippet window.
    limit:
        Maximum number of results; ``None`` keeps all.
    snippet_length:
        Maximum snippet length in characters.

    Returns
    -------
    list[SearchResult]
        Results in the order of *ranked*.  Notes that no longer exist
        are skipped.
    """
    selected = ranked if limit is None else ranked[:limit]
    notes: dict[int, Note] = {
        n.id: n for n in note_store.get_notes([note_id for note_id, _ in selected])
    }

    results: list[SearchResult] = []
    for note_id, score in selected:
        note = notes.get(note_id)
        if note is None:
            continue
        kw = keyword_scores.get(note_id)
        gr = graph_scores.get(note_id)
        results.append(
            SearchResult(
                note_id=note_id,
                score=score,
                keyword_score=kw,
                graph_score=gr,
                found_by_both=bool(kw) and bool(gr),
                content=note.content,
                snippet=_extract_best_snippet(note.content, terms or [], snippet_length),
                tags=note.tags,
                created_at=note.created_at,
            )
        )
    return results

