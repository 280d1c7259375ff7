"""Text processing utilities."""

from __future__ import annotations

import re

# Lowercase stop words (NLTK English list).  Used by the keyword channel only;
# tag normalisation never drops words.
_STOP_WORDS: frozenset[str] = frozenset(
    "i me my myself we our ours ourselves you your yours yourself yourselves "
    "he him his himself she her hers herself it its itself they them their "
    "theirs themselves what which who whom this that these those am is are "
    "was were be been being have has had having do does did doing a an the "
    "and but if or because as until while of at by for with about against "
    "between into through during before after above below to from up down "
    "in out on off over under again further then once here there when where "
    "why how all any both each few more most other some such no nor not only "
    "own same so than too very s t can will just don should now d ll m o re "
    "ve y".split()
)

_HYPHEN_RUNS = re.compile(r"-{2,}")


def tokenize(text: str) -> list[str]:
    """Whitespace + punctuation tokenizer with stop-word removal for BM25.

    Hyphenated tag names are split into their parts so ``machine-learning``
    matches prose containing "machine learning".
    """
    text = text.lower()
    tokens = re.findall(r"\b\w+\b", text)
    return [t for t in tokens if t not in _STOP_WORDS]


def split_terms(query: str) -> list[str]:
    """Split a query into whitespace-separated terms."""
    return query.split()


def normalize_tag(name: str) -> str:
    """Canonical tag form: lowercase, hyphen-separated, alphanumerics only.

    >>> normalize_tag("Machine Learning")
    'machine-learning'
    >>> normalize_tag("node.js")
    'nodejs'
    """
    lowered = name.strip().lower().replace(" ", "-")
    cleaned = "".join(c for c in lowered if c.isalnum() or c == "-")
    return _HYPHEN_RUNS.sub("-", cleaned).strip("-")
