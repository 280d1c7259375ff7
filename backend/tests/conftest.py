"""Shared fixtures: an in-memory store seeded with a small tag graph.

Graph (source is narrower, target is broader)::

    neural-networks --partitive 0.8--> deep-learning
    deep-learning   --generic   0.9--> machine-learning
    machine-learning --generic  0.9--> ai
    python          --generic   0.6--> programming
    cooking  (no edges)

Aliases: ``ml`` (user), ``dl`` (inferred 0.9), ``neural-nets`` (inferred 0.5).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from notegraph.core.models import HierarchyKind, NewEdge, Note, ProvenanceSource, Tag
from notegraph.graph.edges import EdgeWriter
from notegraph.storage.sqlite import SQLiteStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

NOTES = [
    ("gradient", "Notes on gradient descent for training models", ["machine-learning"]),
    ("history", "Overview of artificial intelligence history", ["ai"]),
    ("attention", "Transformers and attention heads", ["deep-learning"]),
    ("backprop", "Backprop through hidden layers", ["neural-networks"]),
    ("pasta", "Pasta recipe with fresh tomato", ["cooking"]),
    ("comprehensions", "List comprehension tips", ["python"]),
]


@dataclass
class Archive:
    store: SQLiteStore
    writer: EdgeWriter
    tags: dict[str, Tag] = field(default_factory=dict)
    notes: dict[str, Note] = field(default_factory=dict)

    def tag_id(self, name: str) -> int:
        return self.tags[name].id

    def note_id(self, key: str) -> int:
        return self.notes[key].id


def seed_archive(store: SQLiteStore) -> Archive:
    """Populate *store* with the graph described in the module docstring."""
    archive = Archive(store=store, writer=EdgeWriter(store))
    for name in (
        "machine-learning", "ai", "deep-learning", "neural-networks",
        "python", "programming", "cooking",
    ):
        archive.tags[name] = store.add_tag(name)

    store.add_alias("ml", archive.tag_id("machine-learning"))
    store.add_alias(
        "dl", archive.tag_id("deep-learning"),
        source=ProvenanceSource.INFERRED, confidence=0.9,
    )
    store.add_alias(
        "neural-nets", archive.tag_id("neural-networks"),
        source=ProvenanceSource.INFERRED, confidence=0.5,
    )

    archive.writer.create_edges([
        NewEdge(
            source_tag_id=archive.tag_id("neural-networks"),
            target_tag_id=archive.tag_id("deep-learning"),
            confidence=0.8,
            hierarchy_kind=HierarchyKind.PARTITIVE,
        ),
        NewEdge(
            source_tag_id=archive.tag_id("deep-learning"),
            target_tag_id=archive.tag_id("machine-learning"),
            confidence=0.9,
            hierarchy_kind=HierarchyKind.GENERIC,
        ),
        NewEdge(
            source_tag_id=archive.tag_id("machine-learning"),
            target_tag_id=archive.tag_id("ai"),
            confidence=0.9,
            hierarchy_kind=HierarchyKind.GENERIC,
        ),
        NewEdge(
            source_tag_id=archive.tag_id("python"),
            target_tag_id=archive.tag_id("programming"),
            confidence=0.6,
            hierarchy_kind=HierarchyKind.GENERIC,
        ),
    ])

    for day, (key, content, tags) in enumerate(NOTES):
        archive.notes[key] = store.add_note(
            content, tags=tags, created_at=BASE_TIME + timedelta(days=day),
        )
    return archive


@pytest.fixture
def store() -> Iterator[SQLiteStore]:
    s = SQLiteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def writer(store: SQLiteStore) -> EdgeWriter:
    return EdgeWriter(store)


@pytest.fixture
def archive(store: SQLiteStore) -> Archive:
    return seed_archive(store)


@pytest.fixture
def archive_factory():
    """Seed an arbitrary store, e.g. a file-backed one for CLI tests."""
    return seed_archive
