"""Configuration validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from notegraph.core.config import RetrievalConfig, load_settings, retrieval_config
from notegraph.core.exceptions import ConfigurationError


def test_defaults():
    config = RetrievalConfig()
    assert config.decay == 0.7
    assert config.threshold == 0.1
    assert config.max_hops == 3
    assert config.short_query_terms == 3
    assert config.broader_weight == 0.5
    assert config.max_expansion_terms == 10
    assert config.partitive_multiplier == 0.5
    assert config.intersection_boost == 1.5
    assert config.centrality_coefficient == 0.3


@pytest.mark.parametrize(
    "overrides",
    [
        {"decay": 0.0},
        {"decay": 1.0},
        {"threshold": 1.5},
        {"threshold": -0.1},
        {"max_hops": -1},
        {"short_query_terms": -2},
        {"max_expansion_terms": 0},
        {"broader_weight": 1.2},
        {"intersection_boost": 0.5},
        {"activation_timeout_seconds": 0},
        {"no_such_field": 1},
    ],
)
def test_invalid_values_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        retrieval_config(**overrides)


def test_zero_hops_is_allowed():
    assert retrieval_config(max_hops=0).max_hops == 0


def test_config_is_frozen():
    config = RetrievalConfig()
    with pytest.raises(ValidationError):
        config.decay = 0.5


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("NOTEGRAPH_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("NOTEGRAPH_RETRIEVAL__DECAY", "0.6")
    settings = load_settings()
    assert settings.db_path == tmp_path / "notes.db"
    assert settings.retrieval.decay == 0.6
    assert settings.retrieval.threshold == 0.1


def test_invalid_environment_raises_configuration_error(monkeypatch):
    monkeypatch.setenv("NOTEGRAPH_RETRIEVAL__DECAY", "2")
    with pytest.raises(ConfigurationError, match="decay"):
        load_settings()
