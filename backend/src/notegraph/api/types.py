"""Public type re-exports for the notegraph API layer.

Consumers of the API can import commonly used types from this module
instead of reaching into ``notegraph.core.models`` directly.
"""

from __future__ import annotations

from notegraph.core.config import RetrievalConfig
from notegraph.core.models import GraphStats, SearchMetadata, SearchResult, WeightedTermSet

__all__ = [
    "GraphStats",
    "RetrievalConfig",
    "SearchMetadata",
    "SearchResult",
    "WeightedTermSet",
]
