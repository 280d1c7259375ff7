"""notegraph: graph-based retrieval for a personal note archive."""

__version__ = "0.1.0"
