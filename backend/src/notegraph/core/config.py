"""Application settings via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings

from notegraph.core.exceptions import ConfigurationError


class RetrievalConfig(BaseModel):
    """Tunables for query expansion, spreading activation and merging.

    Passed explicitly into every retrieval call.  Instances are frozen so
    a call can never observe a half-updated configuration.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    # Spreading activation
    decay: float = 0.7
    threshold: float = 0.1
    max_hops: int = 3
    partitive_multiplier: float = 0.5
    centrality_coefficient: float = 0.3
    activation_timeout_seconds: float = 2.0

    # Query expansion
    short_query_terms: int = 3
    broader_weight: float = 0.5
    broader_min_confidence: float = 0.7
    max_expansion_terms: int = 10

    # Dual-channel merge
    intersection_boost: float = 1.5
    min_graph_density: float = 0.05

    @field_validator("decay", "threshold")
    @classmethod
    def _open_unit_interval(cls, value: float) -> float:
        if not 0.0 < value < 1.0:
            raise ValueError("must lie in the open interval (0, 1)")
        return value

    @field_validator("max_hops", "short_query_terms")
    @classmethod
    def _non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("max_expansion_terms")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator(
        "partitive_multiplier",
        "broader_weight",
        "broader_min_confidence",
        "min_graph_density",
    )
    @classmethod
    def _closed_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("must lie in [0, 1]")
        return value

    @field_validator("intersection_boost")
    @classmethod
    def _at_least_one(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("must be >= 1.0")
        return value

    @field_validator("centrality_coefficient")
    @classmethod
    def _non_negative_float(cls, value: float) -> float:
        if value < 0.0:
            raise ValueError("must not be negative")
        return value

    @field_validator("activation_timeout_seconds")
    @classmethod
    def _positive_float(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("must be positive")
        return value


class Settings(BaseSettings):
    """Global configuration for notegraph.

    Values can be set via environment variables prefixed with NOTEGRAPH_,
    e.g. NOTEGRAPH_DATA_DIR=/path/to/archive.  Retrieval tunables use a
    nested delimiter: NOTEGRAPH_RETRIEVAL__DECAY=0.6.
    """

    model_config = {"env_prefix": "NOTEGRAPH_", "env_nested_delimiter": "__"}

    # Paths
    data_dir: Path = Path.home() / ".notegraph"

    # Search
    default_limit: int = 10
    snippet_length: int = 200

    retrieval: RetrievalConfig = RetrievalConfig()

    @property
    def db_path(self) -> Path:
        return self.data_dir / "notes.db"


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def load_settings(**overrides: Any) -> Settings:
    """Build :class:`Settings` from the environment plus *overrides*.

    Raises
    ------
    ConfigurationError
        If any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(_format_errors(exc)) from exc


def retrieval_config(**overrides: Any) -> RetrievalConfig:
    """Build a validated :class:`RetrievalConfig`, raising ConfigurationError on bad input."""
    try:
        return RetrievalConfig(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(_format_errors(exc)) from exc
