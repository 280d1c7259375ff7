"""Abstract protocol definitions for notegraph storage backends.

This module defines the two storage protocols that retrieval depends on:

- **GraphStoreProtocol** – read-only view over tags, aliases, edges and
  note/tag assignments.
- **NoteStoreProtocol** – note content and timestamps used to hydrate
  results and break ranking ties.

Each protocol is marked ``@runtime_checkable`` so that ``isinstance``
checks work at runtime, but the primary enforcement mechanism is
static type-checking (mypy / pyright).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from notegraph.core.models import GraphStats, Note, NoteTagAssignment, Tag

if TYPE_CHECKING:
    from notegraph.storage.graph import TagGraph

# ---------------------------------------------------------------------------
# Graph store
# ---------------------------------------------------------------------------


@runtime_checkable
class GraphStoreProtocol(Protocol):
    """Protocol for the persisted tag graph (Edge Store Accessor)."""

    def load_graph(self) -> TagGraph:
        """Return a consistent snapshot of every tag and edge.

        The snapshot is read inside a single read transaction so that an
        in-flight edge mutation is never observed partially.

        Raises
        ------
        StoreAccessError
            If the store cannot be read.
        InvariantViolation
            If an edge references a missing tag or a centrality counter
            is negative.
        """
        ...

    def get_tag(self, tag_id: int) -> Tag | None:
        """Retrieve a tag by id, or ``None``."""
        ...

    def find_tag(self, name: str) -> Tag | None:
        """Case-insensitive lookup of a tag by canonical name."""
        ...

    def resolve_alias(self, alias: str) -> Tag | None:
        """Return the canonical tag an alias points at, or ``None``."""
        ...

    def aliases_for(self, tag_id: int, min_inferred_confidence: float = 0.8) -> list[str]:
        """Return the alias strings of a tag.

        Parameters
        ----------
        tag_id:
            Canonical tag identifier.
        min_inferred_confidence:
            User aliases are always returned; inferred aliases only when
            their confidence reaches this value.
        """
        ...

    def broader_tags(
        self,
        tag_id: int,
        min_confidence: float = 0.0,
        at: datetime | None = None,
    ) -> list[tuple[Tag, float]]:
        """Return direct ``generic`` parents of *tag_id*.

        Parameters
        ----------
        tag_id:
            The narrower (child) tag.
        min_confidence:
            Edges below this confidence are ignored.
        at:
            Instant the validity window must cover; ``None`` means now.

        Returns
        -------
        list[tuple[Tag, float]]
            ``(parent_tag, edge_confidence)`` pairs ordered by descending
            confidence.
        """
        ...

    def assignments_for_tags(self, tag_ids: list[int]) -> list[NoteTagAssignment]:
        """Return every note/tag assignment whose tag is in *tag_ids*."""
        ...

    def assignments_for_note(self, note_id: int) -> list[NoteTagAssignment]:
        """Return the tag assignments of a single note."""
        ...

    def stats(self) -> GraphStats:
        """Return counts used for the density check and ``status``."""
        ...


# ---------------------------------------------------------------------------
# Note store
# ---------------------------------------------------------------------------


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """Protocol for note content persistence."""

    def get_note(self, note_id: int) -> Note | None:
        """Retrieve a single note by its identifier."""
        ...

    def get_notes(self, note_ids: list[int]) -> list[Note]:
        """Retrieve multiple notes.  Missing ids are silently skipped."""
        ...

    def get_all_notes(self) -> list[Note]:
        """Return every note currently stored."""
        ...
