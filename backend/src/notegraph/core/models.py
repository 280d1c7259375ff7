"""Pydantic domain models for notegraph."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class HierarchyKind(str, Enum):
    """XKOS-style hierarchy between two concepts."""

    GENERIC = "generic"  # is-a
    PARTITIVE = "partitive"  # part-of


class ProvenanceSource(str, Enum):
    """Who asserted an edge or assignment."""

    USER = "user"
    INFERRED = "inferred"


class TermOrigin(str, Enum):
    """How a seed tag entered the expanded query."""

    ALIAS = "alias"
    BROADER = "broader"
    NOTE = "note"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tag(BaseModel):
    """A node in the tag graph."""

    id: int
    name: str
    degree_centrality: int = 0


class Edge(BaseModel):
    """A typed, weighted, time-bounded relation between two tags.

    The direction is fixed: ``source_tag_id`` is the narrower concept and
    ``target_tag_id`` the broader one.
    """

    id: int
    source_tag_id: int
    target_tag_id: int
    confidence: float = 1.0
    hierarchy_kind: HierarchyKind | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    provenance_source: ProvenanceSource = ProvenanceSource.USER
    model_version: str | None = None
    verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def clamped_confidence(self) -> float:
        return min(1.0, max(0.0, self.confidence))

    def is_valid_at(self, instant: datetime) -> bool:
        """Return True if *instant* falls inside the validity window."""
        if self.valid_from is not None and instant < self.valid_from:
            return False
        if self.valid_until is not None and instant >= self.valid_until:
            return False
        return True

    def other_end(self, tag_id: int) -> int:
        return self.target_tag_id if tag_id == self.source_tag_id else self.source_tag_id


class NewEdge(BaseModel):
    """A candidate edge submitted for atomic insertion."""

    source_tag_id: int
    target_tag_id: int
    confidence: float = 1.0
    hierarchy_kind: HierarchyKind | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    provenance_source: ProvenanceSource = ProvenanceSource.USER
    model_version: str | None = None
    verified: bool = False


class NoteTagAssignment(BaseModel):
    """Link between a note and a tag, with the tagger's confidence."""

    note_id: int
    tag_id: int
    confidence: float = 1.0
    source: ProvenanceSource = ProvenanceSource.USER


class Note(BaseModel):
    """A captured note as owned by the note store."""

    id: int
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    tags: list[str] = Field(default_factory=list)


class WeightedTerm(BaseModel):
    """A seed tag produced by query expansion."""

    tag_id: int
    name: str
    weight: float
    origin: TermOrigin = TermOrigin.ALIAS


class WeightedTermSet(BaseModel):
    """Deduplicated expander output, one entry per tag."""

    terms: list[WeightedTerm] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.terms)

    def __bool__(self) -> bool:
        return bool(self.terms)

    def as_seeds(self) -> dict[int, float]:
        return {t.tag_id: t.weight for t in self.terms}

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.terms]


class SearchResult(BaseModel):
    """A single ranked note."""

    note_id: int
    score: float
    keyword_score: float | None = None
    graph_score: float | None = None
    found_by_both: bool = False
    content: str = ""
    snippet: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None


class SearchMetadata(BaseModel):
    """How a dual-channel search was executed."""

    graph_skipped: bool = False
    skip_reason: str | None = None
    keyword_result_count: int = 0
    graph_result_count: int = 0
    expanded_terms: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0


class GraphStats(BaseModel):
    """Summary statistics about the tag graph."""

    total_notes: int = 0
    total_tags: int = 0
    connected_tags: int = 0
    total_edges: int = 0
    max_degree: int = 0

    @property
    def density(self) -> float:
        """Ratio of tags with at least one edge to all tags."""
        if self.total_tags == 0:
            return 0.0
        return self.connected_tags / self.total_tags


@dataclass
class ActivationEntry:
    """Best activation reached by a tag during one traversal."""

    activation: float
    hop: int
