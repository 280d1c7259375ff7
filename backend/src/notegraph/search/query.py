"""Query expansion via alias resolution and broader-concept inclusion.

Turns a raw query string into a weighted set of seed tags using:
1. Alias resolution - every term is resolved to its canonical tag
2. Broader expansion - short queries also pull in direct ``generic``
   parents of each canonical tag at a reduced weight
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notegraph.core.config import RetrievalConfig
from notegraph.core.exceptions import InvariantViolation
from notegraph.core.models import Tag, TermOrigin, WeightedTerm, WeightedTermSet
from notegraph.utils.text import normalize_tag, split_terms

if TYPE_CHECKING:
    from notegraph.storage.base import GraphStoreProtocol

logger = logging.getLogger(__name__)


class QueryExpander:
    """Expand a user query into weighted seed tags.

    Parameters
    ----------
    graph_store:
        A store satisfying :class:`GraphStoreProtocol` used for alias,
        tag and broader-concept lookups.
    """

    def __init__(self, graph_store: GraphStoreProtocol) -> None:
        self._store = graph_store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def expand(
        self,
        query: str,
        config: RetrievalConfig,
        seed_note: int | None = None,
    ) -> WeightedTermSet:
        """Expand *query* (or *seed_note*) into a :class:`WeightedTermSet`.

        Steps:

        1. With a *seed_note*, return its assigned tags weighted by the
           assignment confidence and stop; note tags are already canonical.
        2. Split the query on whitespace, normalise each term, resolve it
           through the alias table and fall back to a direct tag lookup.
           Each resolved tag gets weight 1.0.
        3. If the query has fewer than ``config.short_query_terms`` terms,
           add each canonical tag's direct broader tags at
           ``config.broader_weight``.
        4. Keep the maximum weight per tag and drop the lowest-weighted
           terms beyond ``config.max_expansion_terms``.

        An empty result means "no graph seed"; it is never an error.
        """
        if seed_note is not None:
            return self._seeds_from_note(seed_note)

        terms = split_terms(query)
        if not terms:
            return WeightedTermSet()

        collected: dict[int, WeightedTerm] = {}
        canonical: list[Tag] = []
        for term in terms:
            tag = self._resolve(term)
            if tag is None:
                continue
            self._offer(collected, tag, 1.0, TermOrigin.ALIAS)
            canonical.append(tag)

        if len(terms) < config.short_query_terms:
            for tag in canonical:
                for parent, _confidence in self._store.broader_tags(
                    tag.id, min_confidence=config.broader_min_confidence,
                ):
                    self._offer(collected, parent, config.broader_weight, TermOrigin.BROADER)

        ranked = list(collected.values())
        if len(ranked) > config.max_expansion_terms:
            # sorted() is stable, so equal weights keep discovery order.
            ranked = sorted(ranked, key=lambda t: t.weight, reverse=True)
            dropped = ranked[config.max_expansion_terms:]
            ranked = ranked[: config.max_expansion_terms]
            logger.debug("Expansion cap dropped %s", [t.name for t in dropped])

        expanded = WeightedTermSet(terms=ranked)
        logger.debug(
            "Expanded query %r -> %s",
            query,
            {t.name: t.weight for t in expanded.terms},
        )
        return expanded

    def keyword_terms(self, query: str, config: RetrievalConfig) -> list[str]:
        """Terms to send to the keyword channel for *query*.

        Includes every raw term, the canonical name of each resolved term,
        its trusted aliases and, for short queries, its broader concepts.
        """
        terms = split_terms(query)
        short = len(terms) < config.short_query_terms
        expanded: dict[str, None] = {}
        for term in terms:
            expanded.setdefault(term.lower(), None)
            tag = self._resolve(term)
            if tag is None:
                continue
            expanded.setdefault(tag.name, None)
            for alias in self._store.aliases_for(tag.id):
                expanded.setdefault(alias, None)
            if short:
                for parent, _ in self._store.broader_tags(
                    tag.id, min_confidence=config.broader_min_confidence,
                ):
                    expanded.setdefault(parent.name, None)
        return list(expanded)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, term: str) -> Tag | None:
        """Alias lookup first, then direct canonical-name lookup."""
        normalized = normalize_tag(term)
        if not normalized:
            return None
        return self._store.resolve_alias(normalized) or self._store.find_tag(normalized)

    def _seeds_from_note(self, note_id: int) -> WeightedTermSet:
        collected: dict[int, WeightedTerm] = {}
        for assignment in self._store.assignments_for_note(note_id):
            tag = self._store.get_tag(assignment.tag_id)
            if tag is None:
                raise InvariantViolation(
                    f"note {note_id} is assigned missing tag {assignment.tag_id}"
                )
            weight = min(1.0, max(0.0, assignment.confidence))
            self._offer(collected, tag, weight, TermOrigin.NOTE)
        return WeightedTermSet(terms=list(collected.values()))

    @staticmethod
    def _offer(
        collected: dict[int, WeightedTerm],
        tag: Tag,
        weight: float,
        origin: TermOrigin,
    ) -> None:
        """Record *tag* at *weight*, keeping the max over all sources."""
        current = collected.get(tag.id)
        if current is None or weight > current.weight:
            collected[tag.id] = WeightedTerm(
                tag_id=tag.id, name=tag.name, weight=weight, origin=origin,
            )
