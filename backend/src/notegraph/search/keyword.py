"""BM25 (sparse keyword) channel for notegraph.

Builds a ``BM25Plus`` index over note content plus tag names and ranks
notes by lexical relevance.  BM25Plus keeps every IDF positive, so a term
found in half (or more) of a small archive still scores.  Scores are
divided by the best score so the channel satisfies
:class:`~notegraph.search.base.KeywordChannelProtocol`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from rank_bm25 import BM25Plus

from notegraph.core.models import Note
from notegraph.utils.text import tokenize

if TYPE_CHECKING:
    from notegraph.storage.base import NoteStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class _BM25Data:
    """The BM25 index and its note-id mapping."""

    bm25: BM25Plus
    note_ids: list[int] = field(default_factory=list)


def _document(note: Note) -> list[str]:
    tag_text = " ".join(tag.replace("-", " ") for tag in note.tags)
    return tokenize(f"{note.content} {tag_text}")


class BM25KeywordChannel:
    """Sparse keyword channel using BM25Plus.

    The index is built from the note store on first use and rebuilt on
    demand with :meth:`build_index` after notes change.

    Parameters
    ----------
    note_store:
        A store satisfying :class:`NoteStoreProtocol`.
    """

    def __init__(self, note_store: NoteStoreProtocol) -> None:
        self._note_store = note_store
        self._data: _BM25Data | None = None

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def build_index(self, notes: list[Note] | None = None) -> None:
        """Tokenise *notes* (default: every stored note) and build the index."""
        if notes is None:
            notes = self._note_store.get_all_notes()
        if not notes:
            logger.debug("build_index called with no notes; keyword channel is empty.")
            self._data = None
            return

        corpus = [_document(n) for n in notes]
        self._data = _BM25Data(bm25=BM25Plus(corpus), note_ids=[n.id for n in notes])
        logger.info("BM25 index built (%d notes)", len(notes))

    def invalidate(self) -> None:
        self._data = None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, expanded_terms: list[str]) -> dict[int, float]:
        """Return ``note_id -> score`` normalised to [0, 1].

        Only notes containing at least one query token are scored; BM25Plus
        otherwise gives every document a small floor for each known term.
        Returns an empty mapping when no notes are indexed or no term
        survives tokenisation.
        """
        if self._data is None:
            self.build_index()
        if self._data is None:
            return {}

        tokenized_query: list[str] = []
        for term in expanded_terms:
            tokenized_query.extend(tokenize(term.replace("-", " ")))
        tokenized_query = list(dict.fromkeys(tokenized_query))
        if not tokenized_query:
            return {}

        bm25 = self._data.bm25
        matched = np.array(
            [any(token in freqs for token in tokenized_query) for freqs in bm25.doc_freqs],
            dtype=bool,
        )
        if not matched.any():
            return {}

        scores: np.ndarray = np.where(matched, bm25.get_scores(tokenized_query), 0.0)
        top = float(np.max(scores))
        if top <= 0.0:
            return {}

        results: dict[int, float] = {}
        for idx in np.flatnonzero(scores > 0.0):
            results[self._data.note_ids[idx]] = float(scores[idx]) / top
        logger.debug("BM25 matched %d notes for %s", len(results), tokenized_query)
        return results
