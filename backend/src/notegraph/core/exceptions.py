"""Custom exception hierarchy for notegraph."""


class NotegraphError(Exception):
    """Base exception for all notegraph errors."""


class ConfigurationError(NotegraphError):
    """Raised when a tunable parameter is out of range or malformed."""


class StoreAccessError(NotegraphError):
    """Raised when the persisted graph or centrality store cannot be read or written."""


class InvariantViolation(NotegraphError):
    """Raised when persisted state is corrupted.

    Examples are an edge that references a missing tag or a negative
    degree-centrality counter.
    """


class NoteNotFoundError(NotegraphError):
    """Raised when a referenced note does not exist."""


class SearchError(NotegraphError):
    """Raised when a search operation fails."""


class ActivationTimeoutError(SearchError):
    """Raised when spreading activation exceeds its wall-clock budget."""
